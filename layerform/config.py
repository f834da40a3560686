"""The layerform configuration file and the backends it selects."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

import yaml

from layerform.cloud import HTTPClient
from layerform.commands import CloudKillCommand, CloudRefreshCommand, CloudSpawnCommand
from layerform.contexts import ConfigContext
from layerform.envvars import CloudEnvVarsBackend, EnvVarsBackend, FileLikeEnvVarsBackend
from layerform.layerdefinitions import (
    CloudDefinitionsBackend,
    DefinitionsBackend,
    FileLikeDefinitionsBackend,
)
from layerform.layerinstances import (
    CloudInstancesBackend,
    FileLikeInstancesBackend,
    InstancesBackend,
)
from layerform.storage import FileStorage

STATE_FILE_NAME = "layerform.lfstate"
DEFINITIONS_FILE_NAME = "layerform.definitions.json"
ENV_VARS_FILE_NAME = "layerform.env"

_DEFAULT_FILE_NAMES = (
    "config",
    "configurations.yaml",
    "configurations.yml",
    "configuration.yaml",
    "configuration.yml",
    "config.yaml",
    "config.yml",
)


class ConfigError(Exception):
    """The configuration could not be read, written or used.

    ``missing`` is true when the first problem met was a configuration
    file that does not exist.
    """

    def __init__(self, message: str, missing: bool = False):
        super().__init__(message)
        self.missing = missing


def default_paths() -> list[str]:
    """Locations searched for the configuration file, in order."""
    home = os.path.expanduser("~")
    if home == "~":
        raise ConfigError("fail to get user home dir")
    return [os.path.join(home, ".layerform", name) for name in _DEFAULT_FILE_NAMES]


@dataclass
class Config:
    """The contexts known to layerform and which one is in use."""

    current_context: str
    contexts: dict[str, ConfigContext] = field(default_factory=dict)
    path: str = ""

    def save(self) -> None:
        """Write the configuration to its file as YAML."""
        document = {
            "currentContext": self.current_context,
            "contexts": {name: ctx.to_dict() for name, ctx in self.contexts.items()},
        }
        try:
            text = yaml.safe_dump(document, sort_keys=False)
        except yaml.YAMLError as exc:
            raise ConfigError(f"fail to encode config file to yaml: {exc}") from exc

        try:
            parent = os.path.dirname(self.path)
            if parent:
                os.makedirs(parent, exist_ok=True)
        except OSError as exc:
            raise ConfigError(f"fail to create config file dir: {exc}") from exc

        try:
            with open(self.path, "w", encoding="utf-8") as fh:
                fh.write(text)
        except OSError as exc:
            raise ConfigError(f"fail to write config file: {exc}") from exc

    def get_current(self) -> ConfigContext:
        """The context in use; cloud credentials in the environment take precedence."""
        url = os.environ.get("LF_CLOUD_URL", "").strip()
        email = os.environ.get("LF_CLOUD_EMAIL", "").strip()
        password = os.environ.get("LF_CLOUD_PASSWORD", "").strip()
        if url and email and password:
            return ConfigContext(type="cloud", url=url, email=email, password=password)
        return self.contexts.get(self.current_context, ConfigContext(type=""))

    def _dir(self) -> str:
        directory = self.get_current().dir
        if not os.path.isabs(directory):
            directory = os.path.join(os.path.dirname(self.path), directory)
        return directory

    def get_cloud_client(self) -> HTTPClient:
        current = self.get_current()
        return HTTPClient.sign_in(current.url, current.email, current.password)

    def get_instances_backend(self) -> InstancesBackend:
        current = self.get_current()
        if current.type == "local":
            return FileLikeInstancesBackend(
                FileStorage(os.path.join(self._dir(), STATE_FILE_NAME))
            )
        if current.type == "cloud":
            return CloudInstancesBackend(self.get_cloud_client())
        raise _unusable(current.type, "instances backend")

    def get_definitions_backend(self) -> DefinitionsBackend:
        current = self.get_current()
        if current.type == "local":
            return FileLikeDefinitionsBackend(
                FileStorage(os.path.join(self._dir(), DEFINITIONS_FILE_NAME))
            )
        if current.type == "cloud":
            return CloudDefinitionsBackend(self.get_cloud_client())
        raise _unusable(current.type, "layers backend")

    def get_env_vars_backend(self) -> EnvVarsBackend:
        current = self.get_current()
        if current.type == "local":
            return FileLikeEnvVarsBackend(
                FileStorage(os.path.join(self._dir(), ENV_VARS_FILE_NAME))
            )
        if current.type == "cloud":
            return CloudEnvVarsBackend(self.get_cloud_client())
        raise _unusable(current.type, "set-env command")

    def get_spawn_command(self) -> CloudSpawnCommand:
        current = self.get_current()
        if current.type == "cloud":
            return CloudSpawnCommand(self.get_cloud_client())
        raise _unusable(current.type, "spawn command")

    def get_kill_command(self) -> CloudKillCommand:
        current = self.get_current()
        if current.type == "cloud":
            return CloudKillCommand(self.get_cloud_client())
        raise _unusable(current.type, "kill command")

    def get_refresh_command(self) -> CloudRefreshCommand:
        current = self.get_current()
        if current.type == "cloud":
            return CloudRefreshCommand(self.get_cloud_client())
        raise _unusable(current.type, "refresh command")


def _unusable(context_type: str, what: str) -> ConfigError:
    if context_type in ("local", "s3"):
        return ConfigError(
            f"fail to get {what}: contexts of type {context_type} cannot provide it, "
            'use a context of type "cloud"'
        )
    return ConfigError(f"fail to get {what} unexpected context type {context_type}")


def init_config(name: str, ctx: ConfigContext, path: str | None = None) -> Config:
    """A new configuration holding one context, which becomes the current one."""
    if not path:
        path = default_paths()[0]
    return Config(current_context=name, contexts={name: ctx}, path=path)


def _parse(text: str) -> tuple[str, dict[str, ConfigContext]]:
    raw = yaml.safe_load(text)
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("config file is not a mapping")
    current = raw.get("currentContext")
    contexts_raw = raw.get("contexts") or {}
    if not isinstance(contexts_raw, dict):
        raise ValueError("contexts is not a mapping")
    contexts = {}
    for name, entry in contexts_raw.items():
        if entry is not None and not isinstance(entry, dict):
            raise ValueError(f"context {name} is not a mapping")
        contexts[str(name)] = ConfigContext.from_dict(entry)
    return ("" if current is None else str(current)), contexts


def load(path: str | None = None) -> Config:
    """Read the configuration from ``path`` or from the first usable default path."""
    paths = [path] if path else default_paths()

    first_error: ConfigError | None = None
    for candidate in paths:
        try:
            with open(candidate, encoding="utf-8") as fh:
                text = fh.read()
        except OSError as exc:
            if first_error is None:
                first_error = ConfigError(
                    f"fail to read config file: {exc}",
                    missing=isinstance(exc, FileNotFoundError),
                )
                first_error.__cause__ = exc
            continue

        try:
            current, contexts = _parse(text)
        except (yaml.YAMLError, ValueError) as exc:
            if first_error is None:
                first_error = ConfigError(f"fail to decode config content: {exc}")
                first_error.__cause__ = exc
            continue

        if current not in contexts:
            if first_error is None:
                first_error = ConfigError(f"context {current} not found")
            continue

        return Config(current_context=current, contexts=contexts, path=candidate)

    if first_error is None:
        first_error = ConfigError("no config file found", missing=True)
    raise first_error