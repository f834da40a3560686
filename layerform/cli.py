"""The layerform command line."""

from __future__ import annotations

import argparse
import csv
import functools
import logging
import os
import re
import sys
import uuid
from contextlib import contextmanager
from importlib import metadata
from typing import Any, Callable, Iterator, Mapping, MutableSequence, Sequence

import requests

from layerform.cli_config import register as register_config
from layerform.cloud import CloudError
from layerform.commands import CommandError, SetEnvCommand
from layerform.config import Config, ConfigError, load
from layerform.data import EnvVar, LayerDefinition, LayerInstance, LayerInstanceStatus
from layerform.storage import StorageError
from layerform.validation import is_valid_email

_NAME_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]*[A-Za-z0-9]")
_SHORT_ID_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_SHORT_ID_LENGTH = 22

_FAILURES = (
    ConfigError,
    CloudError,
    CommandError,
    StorageError,
    requests.RequestException,
    LookupError,
    ValueError,
)

_LOG_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": logging.CRITICAL + 1,
}


class _CliError(Exception):
    """A command failed; its arguments are the lines to print on stderr."""


def _reports_errors(func: Callable[[argparse.Namespace], int]) -> Callable[[argparse.Namespace], int]:
    @functools.wraps(func)
    def wrapper(args: argparse.Namespace) -> int:
        try:
            return func(args)
        except _CliError as exc:
            for line in exc.args:
                print(line, file=sys.stderr)
            return 1

    return wrapper


@contextmanager
def _failing_as(message: str | None = None) -> Iterator[None]:
    try:
        yield
    except _FAILURES as exc:
        text = str(exc) if message is None else f"{message}: {exc}"
        raise _CliError(text) from exc


def _load_config() -> Config:
    with _failing_as("fail to load config"):
        return load()


def _short_id() -> str:
    number = uuid.uuid4().int
    base = len(_SHORT_ID_ALPHABET)
    chars = []
    while number:
        number, digit = divmod(number, base)
        chars.append(_SHORT_ID_ALPHABET[digit])
    chars.extend(_SHORT_ID_ALPHABET[0] * (_SHORT_ID_LENGTH - len(chars)))
    return "".join(reversed(chars))


def _status_text(status: LayerInstanceStatus | str) -> str:
    return status.value if isinstance(status, LayerInstanceStatus) else str(status or "")


def _format_table(rows: Sequence[Sequence[str]], padding: int) -> str:
    columns = max(len(row) for row in rows)
    widths = [
        max(len(row[i]) for row in rows if i < len(row)) + padding for i in range(columns - 1)
    ]
    lines = []
    for row in rows:
        cells = [cell.ljust(widths[i]) for i, cell in enumerate(row[:-1])]
        lines.append("".join(cells) + row[-1])
    return "\n".join(lines) + "\n"


def compute_depth(
    layer: LayerDefinition | None,
    layers: Mapping[str, LayerDefinition],
    level: int = 0,
) -> int:
    """How many dependency levels lie below the layer, offset by ``level``."""
    if layer is None:
        return level
    return max(
        (compute_depth(layers.get(dep), layers, level + 1) for dep in layer.dependencies),
        default=level,
    )


def sort_layers_by_depth(layers: MutableSequence[LayerDefinition]) -> None:
    """Sort layers in place so that dependencies come before their dependants."""
    by_name = {layer.name: layer for layer in layers}
    layers.sort(key=lambda layer: compute_depth(layer, by_name))


def sort_instances_by_depth(
    instances: MutableSequence[LayerInstance],
    layers: Mapping[str, LayerDefinition],
) -> None:
    """Sort instances in place by the depth of the layer each belongs to."""
    instances.sort(key=lambda inst: compute_depth(layers.get(inst.definition_name), layers))


@_reports_errors
def create_user(args: argparse.Namespace) -> int:
    cfg = _load_config()

    current = cfg.get_current()
    if current.type != "cloud":
        raise _CliError(
            'This command only works if the current context is of type "cloud" '
            f'but current has type "{current.type}".'
        )

    name = (args.name or "").strip()
    email = (args.email or "").strip()
    if not is_valid_email(email):
        raise _CliError(f'Invalid email "{email}"')

    with _failing_as("fail to get cloud client"):
        client = cfg.get_cloud_client()

    with _failing_as("fail to perform http request to cloud backend"):
        res = client.request("POST", "/v1/users", {"name": name, "email": email})

    if res.status_code == 409:
        raise _CliError(f"User with email {email} already exists.")

    try:
        body: Any = res.json()
    except ValueError as exc:
        raise _CliError(f"fail decode create user JSON response: {exc}") from exc
    secret = body.get("password", "") if isinstance(body, dict) else ""

    identifier = name or email
    print(f"User {identifier} created successfully.\nPassword: {secret}")
    return 0


@_reports_errors
def list_definitions(args: argparse.Namespace) -> int:
    cfg = _load_config()

    with _failing_as("fail to get layers backend"):
        backend = cfg.get_definitions_backend()

    with _failing_as("fail to list layer definitions"):
        layers = backend.list_layers()

    if not layers:
        print(
            'No layer definitions configured, provision layers by running "layerform configure"'
        )
        return 0

    sort_layers_by_depth(layers)
    rows = [["NAME", "DEPENDENCIES"]]
    rows.extend([layer.name, ",".join(layer.dependencies)] for layer in layers)
    sys.stdout.write(_format_table(rows, 1))
    return 0


@_reports_errors
def list_instances(args: argparse.Namespace) -> int:
    cfg = _load_config()

    with _failing_as("fail to get layers backend"):
        definitions_backend = cfg.get_definitions_backend()

    with _failing_as("fail to get layers instances backend"):
        instances_backend = cfg.get_instances_backend()

    with _failing_as("fail to list layer instances"):
        instances = instances_backend.list_instances()

    if not instances:
        print('No layer instances spawned, spawn layers by running "layerform spawn"')
        return 0

    with _failing_as("fail to list layer definitions"):
        layers = definitions_backend.list_layers()

    by_name = {layer.name: layer for layer in layers}
    sort_instances_by_depth(instances, by_name)

    rows = [["INSTANCE NAME", "LAYER NAME", "DEPENDENCIES", "STATUS"]]
    for instance in instances:
        layer = by_name.get(instance.definition_name)
        dependencies = layer.dependencies if layer is not None else []
        deps = ",".join(
            f"{dep}={instance.get_dependency_instance_name(dep)}" for dep in dependencies
        )
        rows.append(
            [
                instance.instance_name,
                instance.definition_name,
                deps,
                _status_text(instance.status),
            ]
        )
    sys.stdout.write(_format_table(rows, 1))
    return 0


@_reports_errors
def set_env(args: argparse.Namespace) -> int:
    cfg = _load_config()

    with _failing_as("fail to get environment variables backend"):
        backend = cfg.get_env_vars_backend()

    with _failing_as("fail to save environment variable"):
        SetEnvCommand(backend).run(EnvVar(name=args.var_name, value=args.value))
    return 0


@_reports_errors
def spawn(args: argparse.Namespace) -> int:
    cfg = _load_config()

    variables = list(args.var or [])
    dependencies_instance = dict(args.base or {})

    with _failing_as("fail to get spawn command"):
        command = cfg.get_spawn_command()

    instance_name = args.desired_id or _short_id()
    if _NAME_PATTERN.fullmatch(instance_name) is None:
        raise _CliError(
            f"Invalid name: {instance_name}",
            "Name must start and end with an alphanumeric character "
            "and can include dashes and underscores in between.",
        )

    with _failing_as():
        command.run(args.layer, instance_name, dependencies_instance, variables)
    return 0


@_reports_errors
def kill(args: argparse.Namespace) -> int:
    cfg = _load_config()

    variables = list(args.var or [])

    with _failing_as("fail to get kill command"):
        command = cfg.get_kill_command()

    with _failing_as():
        command.run(args.layer, args.instance, False, variables, args.force)
    return 0


@_reports_errors
def refresh(args: argparse.Namespace) -> int:
    cfg = _load_config()

    variables = list(args.var or [])

    with _failing_as("fail to get refresh command"):
        command = cfg.get_refresh_command()

    with _failing_as():
        command.run(args.layer, args.instance, variables)
    return 0


class _StringMapAction(argparse.Action):
    """Collects ``key=value`` pairs, comma separated, over repeated flags."""

    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: Any,
        option_string: str | None = None,
    ) -> None:
        mapping = dict(getattr(namespace, self.dest) or {})
        items = next(csv.reader([values])) if values else []
        for item in items:
            key, sep, value = item.partition("=")
            if not sep:
                parser.error(f"{item} must be formatted as key=value")
            mapping[key] = value
        setattr(namespace, self.dest, mapping)


def _help_for(parser: argparse.ArgumentParser) -> Callable[[argparse.Namespace], int]:
    def show(_args: argparse.Namespace) -> int:
        parser.print_help()
        return 0

    return show


def _version() -> str:
    try:
        return metadata.version("layerform")
    except metadata.PackageNotFoundError:
        return "(devel)"


def _add_var_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--var",
        action="append",
        default=None,
        help="a variable for the layer's Terraform files, i.e. 'foo=bar'; may be repeated",
    )


def build_parser() -> argparse.ArgumentParser:
    """The argument parser for every layerform command."""
    parser = argparse.ArgumentParser(
        prog="layerform",
        description=(
            "Layerform helps engineers create their own staging environments "
            "using plain Terraform files."
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {_version()}")
    parser.set_defaults(func=_help_for(parser))
    commands = parser.add_subparsers(title="commands")

    cloud_parser = commands.add_parser(
        "cloud",
        help="Modify layerform cloud entities",
        description=(
            'Modify layerform cloud entities using subcomands like "layerform cloud create-user". '
            'This command only works if the current context is of type "cloud".'
        ),
    )
    cloud_parser.set_defaults(func=_help_for(cloud_parser))
    cloud_commands = cloud_parser.add_subparsers(title="commands")
    user_parser = cloud_commands.add_parser(
        "create-user",
        help="Creates a new user in layerform cloud",
        description=(
            "Creates a new user in layerform cloud. "
            "The password will be printed to stdout, e-mail must be unique."
        ),
    )
    user_parser.add_argument("-n", "--name", default="", help="name of the new user")
    user_parser.add_argument("-e", "--email", required=True, help="email of the new user")
    user_parser.set_defaults(func=create_user)

    register_config(commands)

    list_parser = commands.add_parser(
        "list",
        help="List layerform resources",
        description=(
            "List layerform resources. Prints a table of the most important "
            "information about the specified resource."
        ),
    )
    list_parser.set_defaults(func=_help_for(list_parser))
    list_commands = list_parser.add_subparsers(title="commands")
    list_commands.add_parser(
        "definitions",
        help="List layers definitions",
        description="Prints a table of the most important information about layer definitions.",
    ).set_defaults(func=list_definitions)
    list_commands.add_parser(
        "instances",
        help="List layers instances",
        description="Prints a table of the most important information about layer instances.",
    ).set_defaults(func=list_instances)

    env_parser = commands.add_parser(
        "set-env",
        help="set an environment variable to be used when spawning a layer",
        description=(
            "Sets an environment variable to be used when spawning layers. Variables named "
            "TF_VAR_name set values for the variables in your layers."
        ),
    )
    env_parser.add_argument("var_name", metavar="VAR_NAME")
    env_parser.add_argument("value")
    env_parser.set_defaults(func=set_env)

    spawn_parser = commands.add_parser(
        "spawn",
        help="creates a layer instance",
        description=(
            "Creates a layer instance. Whenever a desired ID is not provided, a random ID "
            "is generated. If an instance with the same ID already exists for the layer "
            "definition, an error is returned."
        ),
    )
    spawn_parser.add_argument("layer")
    spawn_parser.add_argument("desired_id", nargs="?", default=None)
    spawn_parser.add_argument(
        "--base",
        action=_StringMapAction,
        default=None,
        help="underlying layers and their IDs to place the layer on top of, i.e. 'eks=dev'",
    )
    _add_var_flag(spawn_parser)
    spawn_parser.set_defaults(func=spawn)

    kill_parser = commands.add_parser(
        "kill",
        help="destroys a layer instance",
        description=(
            "Destroys a layer instance. A layer instance which has dependants "
            "cannot be destroyed."
        ),
    )
    kill_parser.add_argument("layer")
    kill_parser.add_argument("instance")
    _add_var_flag(kill_parser)
    kill_parser.add_argument(
        "--force",
        action="store_true",
        help="force the destruction of the layer instance even if it has dependants",
    )
    kill_parser.set_defaults(func=kill)

    refresh_parser = commands.add_parser(
        "refresh",
        help="refreshes a layer instance",
        description=(
            "Updates the layer instance resources to comply with the current version of "
            "its layer definition, or updates values for its variables."
        ),
    )
    refresh_parser.add_argument("layer")
    refresh_parser.add_argument("instance")
    _add_var_flag(refresh_parser)
    refresh_parser.set_defaults(func=refresh)

    return parser


def _configure_logging() -> None:
    level = _LOG_LEVELS.get(os.environ.get("LF_LOG", "").strip().lower())
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    if level is not None:
        logging.getLogger().setLevel(level)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the layerform command line and return its exit status."""
    _configure_logging()
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())