"""Backends that store layer definitions."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable

import requests

from layerform.cloud import CloudError, HTTPClient
from layerform.data import LayerDefinition
from layerform.storage import FileLike, StorageError

logger = logging.getLogger(__name__)

_FILE_VERSION = 0


class LayerNotFoundError(LookupError):
    """A layer definition does not exist."""


class DefinitionsBackend(ABC):
    """Storage for layer definitions."""

    @abstractmethod
    def list_layers(self) -> list[LayerDefinition]:
        """Every stored layer definition."""

    @abstractmethod
    def get_layer(self, name: str) -> LayerDefinition | None:
        """The layer definition with the given name."""

    @abstractmethod
    def resolve_dependencies(self, layer: LayerDefinition) -> list[LayerDefinition]:
        """The definitions of the layer's direct dependencies, in order."""

    @abstractmethod
    def update_layers(self, layers: Iterable[LayerDefinition]) -> None:
        """Replace all stored definitions with the given ones."""

    @abstractmethod
    def location(self) -> str:
        """Where the definitions are kept."""


def _resolve_locally(backend: DefinitionsBackend, layer: LayerDefinition) -> list[LayerDefinition]:
    logger.debug("Resolving layer dependencies layer=%s", layer.name)
    resolved = []
    for dep in layer.dependencies:
        try:
            dep_layer = backend.get_layer(dep)
        except LayerNotFoundError as exc:
            raise LayerNotFoundError(
                f'fail to get dependency "{dep}" of layer "{layer.name}": {exc}'
            ) from exc
        if dep_layer is None:
            raise LayerNotFoundError(
                f'dependency "{dep}" of layer "{layer.name}" not found: layer not found'
            )
        resolved.append(dep_layer)
    return resolved


class FileLikeDefinitionsBackend(DefinitionsBackend):
    """Definitions kept in a single JSON document."""

    def __init__(self, storage: FileLike):
        self._storage = storage
        self._version = _FILE_VERSION
        self._layers: dict[str, LayerDefinition] = {}

        try:
            raw = storage.load()
        except StorageError as exc:
            raise StorageError(f"fail to read file: {exc}") from exc
        if raw is None:
            return
        if not isinstance(raw, dict):
            raise StorageError("fail to read file: definitions document is not an object")

        version = raw.get("version")
        if isinstance(version, int) and not isinstance(version, bool):
            self._version = version
        try:
            self._layers = {
                name: LayerDefinition.from_dict(layer)
                for name, layer in (raw.get("layers") or {}).items()
            }
        except (AttributeError, TypeError, ValueError) as exc:
            raise StorageError(f"fail to read file: {exc}") from exc

    def get_layer(self, name: str) -> LayerDefinition:
        logger.debug("Getting layer layer=%s", name)
        try:
            return self._layers[name]
        except KeyError:
            raise LayerNotFoundError(f"fail to get layer {name}: layer not found") from None

    def resolve_dependencies(self, layer: LayerDefinition) -> list[LayerDefinition]:
        return _resolve_locally(self, layer)

    def list_layers(self) -> list[LayerDefinition]:
        logger.debug("Listing layers")
        return list(self._layers.values())

    def update_layers(self, layers: Iterable[LayerDefinition]) -> None:
        logger.debug("Updating layers")
        self._layers = {layer.name: layer for layer in layers}
        self._storage.save(
            {
                "version": self._version,
                "layers": {name: layer.to_dict() for name, layer in self._layers.items()},
            }
        )

    def location(self) -> str:
        return self._storage.path()


class InMemoryDefinitionsBackend(DefinitionsBackend):
    """Definitions held only in memory."""

    def __init__(self, layers: Iterable[LayerDefinition]):
        self._layers = {layer.name: layer for layer in layers}

    def get_layer(self, name: str) -> LayerDefinition | None:
        logger.debug("Getting layer layer=%s", name)
        return self._layers.get(name)

    def resolve_dependencies(self, layer: LayerDefinition) -> list[LayerDefinition]:
        return _resolve_locally(self, layer)

    def list_layers(self) -> list[LayerDefinition]:
        logger.debug("Listing layers")
        return list(self._layers.values())

    def update_layers(self, layers: Iterable[LayerDefinition]) -> None:
        logger.debug("Updating layers")
        self._layers = {layer.name: layer for layer in layers}

    def location(self) -> str:
        return "memory"


def _decode(res: requests.Response, what: str) -> Any:
    try:
        return res.json()
    except ValueError as exc:
        raise CloudError(f"fail to decode {what} JSON response: {exc}") from exc


class CloudDefinitionsBackend(DefinitionsBackend):
    """Definitions kept by the cloud service."""

    def __init__(self, client: HTTPClient):
        self._client = client

    def _call(self, method: str, path: str, payload: Any = None) -> requests.Response:
        res = self._client.request(method, path, payload)
        if res.status_code != 200:
            raise CloudError(f"HTTP request to {path} failed with status code {res.status_code}")
        return res

    def location(self) -> str:
        return self._client.base_url

    def get_layer(self, name: str) -> LayerDefinition:
        raw = _decode(self._call("GET", f"/v1/definitions/{name}"), "layer")
        try:
            return LayerDefinition.from_dict(raw)
        except (AttributeError, TypeError, ValueError) as exc:
            raise CloudError(f"fail to decode layer JSON response: {exc}") from exc

    def list_layers(self) -> list[LayerDefinition]:
        raw = _decode(self._call("GET", "/v1/definitions"), "layers")
        try:
            return [LayerDefinition.from_dict(layer) for layer in raw or []]
        except (AttributeError, TypeError, ValueError) as exc:
            raise CloudError(f"fail to decode layers JSON response: {exc}") from exc

    def resolve_dependencies(self, layer: LayerDefinition) -> list[LayerDefinition]:
        resolved = []
        for dep in layer.dependencies:
            try:
                resolved.append(self.get_layer(dep))
            except CloudError as exc:
                raise CloudError(f"fail to resolve dependency {dep}: {exc}") from exc
        return resolved

    def update_layers(self, layers: Iterable[LayerDefinition]) -> None:
        self._call("POST", "/v1/configure", [layer.to_dict() for layer in layers])