"""Commands that spawn, kill and refresh layer instances through the cloud service."""

from __future__ import annotations

import logging
import sys
import time
from contextlib import contextmanager
from typing import IO, Iterator, Mapping, Sequence

from layerform.cloud import CloudError, HTTPClient
from layerform.data import EnvVar, LayerInstance, LayerInstanceStatus
from layerform.dependants import has_dependants
from layerform.envvars import EnvVarsBackend
from layerform.layerdefinitions import CloudDefinitionsBackend
from layerform.layerinstances import CloudInstancesBackend, InstanceNotFoundError
from layerform.storage import StorageError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0

_BACKEND_ERRORS = (CloudError, StorageError, LookupError, ValueError)


class CommandError(Exception):
    """A command could not do what it was asked to."""


def _status_text(status: LayerInstanceStatus | str) -> str:
    return status.value if isinstance(status, LayerInstanceStatus) else str(status)


@contextmanager
def _step(message: str, stream: IO[str] | None = None) -> Iterator[None]:
    """Report the start and the outcome of one step of a command."""
    out = stream if stream is not None else sys.stderr
    print(f"... {message}", file=out, flush=True)
    try:
        yield
    except BaseException:
        print(f"[failed] {message}", file=out, flush=True)
        raise
    print(f"[done] {message}", file=out, flush=True)


def _watch(
    instances: CloudInstancesBackend,
    definition_name: str,
    instance_name: str,
    interval: float,
) -> Iterator[LayerInstance]:
    """Fetch the instance over and over, waiting ``interval`` seconds before each fetch."""
    while True:
        time.sleep(interval)
        yield instances.get_instance(definition_name, instance_name)


def _post(client: HTTPClient, path: str, payload: object) -> None:
    res = client.request("POST", path, payload)
    if res.status_code != 200:
        raise CommandError(f"HTTP request to {path} failed with status code {res.status_code}")


class CloudSpawnCommand:
    """Spawns a layer instance remotely and waits until it is alive."""

    def __init__(self, client: HTTPClient, poll_interval: float = DEFAULT_POLL_INTERVAL):
        self._client = client
        self._instances = CloudInstancesBackend(client)
        self._poll_interval = poll_interval

    def run(
        self,
        definition_name: str,
        instance_name: str,
        dependencies_instance: Mapping[str, str] | None = None,
        vars: Sequence[str] = (),
    ) -> None:
        logger.debug("Spawning instance remotely")

        try:
            self._instances.get_instance(definition_name, instance_name)
        except InstanceNotFoundError:
            pass
        except _BACKEND_ERRORS as exc:
            raise CommandError(f"fail to get instance: {exc}") from exc
        else:
            raise CommandError(
                f"layer {definition_name} already spawned with name {instance_name}"
            )

        path = f"/v1/definitions/{definition_name}/instances/{instance_name}/spawn"
        try:
            _post(
                self._client,
                path,
                {
                    "vars": list(vars),
                    "dependenciesInstance": dict(dependencies_instance or {}),
                },
            )
        except CloudError as exc:
            raise CommandError(str(exc)) from exc

        message = f'Spawning instance "{instance_name}" of layer "{definition_name}" remotely'
        with _step(message):
            watcher = _watch(
                self._instances, definition_name, instance_name, self._poll_interval
            )
            while True:
                try:
                    instance = next(watcher)
                except _BACKEND_ERRORS as exc:
                    raise CommandError(
                        f"fail to get instance to check spawning status: {exc}"
                    ) from exc

                if instance.status == LayerInstanceStatus.SPAWNING:
                    continue
                if instance.status == LayerInstanceStatus.FAULTY:
                    raise CommandError(
                        f"fail to spawn instance {instance_name} "
                        f"of definition {definition_name}"
                    )
                if instance.status == LayerInstanceStatus.ALIVE:
                    return
                raise CommandError(
                    "instance entered a unexpected status of "
                    f"{_status_text(instance.status)}"
                )


class CloudKillCommand:
    """Kills a layer instance remotely and waits until it is gone."""

    def __init__(self, client: HTTPClient, poll_interval: float = DEFAULT_POLL_INTERVAL):
        self._client = client
        self._definitions = CloudDefinitionsBackend(client)
        self._instances = CloudInstancesBackend(client)
        self._poll_interval = poll_interval

    def run(
        self,
        definition_name: str,
        instance_name: str,
        auto_approve: bool = False,
        vars: Sequence[str] = (),
        force: bool = False,
    ) -> None:
        logger.debug("Killing instance remotely")

        message = f'Preparing to kill instance "{instance_name}" of layer "{definition_name}"'
        with _step(message):
            try:
                definition = self._definitions.get_layer(definition_name)
            except _BACKEND_ERRORS as exc:
                raise CommandError(f"fail to get layer: {exc}") from exc
            if definition is None:
                raise CommandError("layer not found")

            try:
                self._instances.get_instance(definition.name, instance_name)
            except InstanceNotFoundError as exc:
                raise CommandError(
                    f"instance {instance_name} not found for layer {definition.name}"
                ) from exc
            except _BACKEND_ERRORS as exc:
                raise CommandError(f"fail to get layer instance: {exc}") from exc

            try:
                dependants = has_dependants(
                    self._instances, self._definitions, definition_name, instance_name
                )
            except _BACKEND_ERRORS as exc:
                raise CommandError(f"fail to check if layer has dependants: {exc}") from exc
            if dependants:
                raise CommandError("can't kill this layer because other layers depend on it")

            path = f"/v1/definitions/{definition_name}/instances/{instance_name}/kill"
            try:
                _post(self._client, path, {"vars": list(vars)})
            except CloudError as exc:
                raise CommandError(str(exc)) from exc

        message = f'Killing instance "{instance_name}" of layer "{definition_name}" remotely'
        with _step(message):
            watcher = _watch(
                self._instances, definition_name, instance_name, self._poll_interval
            )
            while True:
                try:
                    instance = next(watcher)
                except InstanceNotFoundError:
                    return
                except _BACKEND_ERRORS as exc:
                    raise CommandError(
                        f"fail to get instance to check killing status: {exc}"
                    ) from exc

                if instance.status == LayerInstanceStatus.KILLING:
                    continue
                if instance.status == LayerInstanceStatus.FAULTY:
                    raise CommandError(
                        f"fail to kill instance {instance_name} of definition {definition_name}"
                    )
                raise CommandError(
                    "instance entered a unexpected status of "
                    f"{_status_text(instance.status)}"
                )


class CloudRefreshCommand:
    """Refreshes a layer instance remotely and waits until it is alive again."""

    def __init__(self, client: HTTPClient, poll_interval: float = DEFAULT_POLL_INTERVAL):
        self._client = client
        self._instances = CloudInstancesBackend(client)
        self._definitions = CloudDefinitionsBackend(client)
        self._poll_interval = poll_interval

    def run(self, definition_name: str, instance_name: str, vars: Sequence[str] = ()) -> None:
        logger.debug("Refreshing instance remotely")

        message = (
            f'Preparing to refresh instance "{instance_name}" of layer "{definition_name}"'
        )
        with _step(message):
            try:
                definition = self._definitions.get_layer(definition_name)
            except _BACKEND_ERRORS as exc:
                raise CommandError(f"fail to get layer definition: {exc}") from exc

            try:
                self._instances.get_instance(definition.name, instance_name)
            except InstanceNotFoundError as exc:
                raise CommandError(
                    f"instance {instance_name} not found for layer {definition.name}"
                ) from exc
            except _BACKEND_ERRORS as exc:
                raise CommandError(f"fail to get layer instance: {exc}") from exc

        message = f'Refreshing instance "{instance_name}" of layer "{definition_name}" remotely'
        with _step(message):
            path = f"/v1/definitions/{definition_name}/instances/{instance_name}/refresh"
            try:
                _post(self._client, path, {"vars": list(vars)})
            except CloudError as exc:
                raise CommandError(str(exc)) from exc

            watcher = _watch(
                self._instances, definition_name, instance_name, self._poll_interval
            )
            while True:
                try:
                    instance = next(watcher)
                except _BACKEND_ERRORS as exc:
                    raise CommandError(
                        f"fail to get instance to check spawning status: {exc}"
                    ) from exc

                if instance.status == LayerInstanceStatus.REFRESHING:
                    continue
                if instance.status == LayerInstanceStatus.FAULTY:
                    raise CommandError(
                        f"fail to spawn instance {instance_name} "
                        f"of definition {definition_name}"
                    )
                if instance.status == LayerInstanceStatus.ALIVE:
                    return
                raise CommandError(
                    "instance entered a unexpected status of "
                    f"{_status_text(instance.status)}"
                )


class SetEnvCommand:
    """Stores an environment variable used when running layers."""

    def __init__(self, backend: EnvVarsBackend):
        self._backend = backend

    def run(self, variable: EnvVar) -> None:
        self._backend.save_variable(variable)