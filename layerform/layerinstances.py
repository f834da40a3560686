"""Backends that store layer instances."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

import requests

from layerform.cloud import CloudError, HTTPClient
from layerform.data import LayerInstance, LayerInstanceV0
from layerform.storage import FileLike, StorageError

logger = logging.getLogger(__name__)

CURRENT_FILE_LIKE_MODEL_VERSION = 1


class InstanceNotFoundError(LookupError):
    """A layer instance does not exist."""


class InstancesFileVersionError(ValueError):
    """The instances document has a version this program cannot read."""


class InstancesBackend(ABC):
    """Storage for layer instances."""

    @abstractmethod
    def get_instance(self, layer_name: str, instance_name: str) -> LayerInstance:
        """The instance with the given name of the given layer."""

    @abstractmethod
    def list_instances_by_layer(self, layer_name: str) -> list[LayerInstance]:
        """Every instance of the given layer."""

    @abstractmethod
    def save_instance(self, instance: LayerInstance) -> None:
        """Store an instance, replacing one with the same layer and name."""

    @abstractmethod
    def delete_instance(self, layer_name: str, instance_name: str) -> None:
        """Remove an instance."""

    @abstractmethod
    def list_instances(self) -> list[LayerInstance]:
        """Every stored instance."""


@dataclass
class FileLikeModel:
    """The document that holds every instance."""

    version: int = CURRENT_FILE_LIKE_MODEL_VERSION
    instances: list[LayerInstance] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "instances": [instance.to_dict() for instance in self.instances],
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> FileLikeModel:
        """Decode the document, upgrading the version 0 layout when needed."""
        version = raw.get("version")
        if version is None:
            version = 0
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            raise InstancesFileVersionError(
                f"got unexpected version {version} of instances file"
            )

        if version == CURRENT_FILE_LIKE_MODEL_VERSION:
            return cls(
                version=CURRENT_FILE_LIKE_MODEL_VERSION,
                instances=[LayerInstance.from_dict(i) for i in raw.get("instances") or []],
            )

        if version > CURRENT_FILE_LIKE_MODEL_VERSION:
            raise InstancesFileVersionError(
                "instances file was created using a newer version of layerform"
            )

        return cls(
            version=CURRENT_FILE_LIKE_MODEL_VERSION,
            instances=[
                LayerInstanceV0.from_dict(state).to_layer_instance()
                for state in raw.get("states") or []
            ],
        )


class FileLikeInstancesBackend(InstancesBackend):
    """Instances kept in a single JSON document."""

    def __init__(self, storage: FileLike):
        self._storage = storage
        try:
            raw = storage.load()
        except StorageError as exc:
            raise StorageError(f"fail to read file: {exc}") from exc

        if raw is None:
            self.model = FileLikeModel()
            return
        if not isinstance(raw, dict):
            raise StorageError("fail to read file: instances document is not an object")
        try:
            self.model = FileLikeModel.from_dict(raw)
        except (AttributeError, TypeError) as exc:
            raise StorageError(f"fail to read file: {exc}") from exc

    def _save(self) -> None:
        self._storage.save(self.model.to_dict())

    def get_instance(self, layer_name: str, instance_name: str) -> LayerInstance:
        logger.debug("Getting layer instance layer=%s instance=%s", layer_name, instance_name)
        for instance in self.model.instances:
            if (
                instance.definition_name == layer_name
                and instance.instance_name == instance_name
            ):
                return instance
        raise InstanceNotFoundError(
            f"instance {instance_name} for layer {layer_name} not found: instance not found"
        )

    def save_instance(self, instance: LayerInstance) -> None:
        logger.debug(
            "Saving layer instance layer=%s instance=%s",
            instance.definition_name,
            instance.instance_name,
        )
        kept = [
            s
            for s in self.model.instances
            if s.definition_name != instance.definition_name
            or s.instance_name != instance.instance_name
        ]
        kept.append(instance)
        self.model.instances = kept
        self._save()

    def delete_instance(self, layer_name: str, instance_name: str) -> None:
        logger.debug("Deleting layer instance layer=%s instance=%s", layer_name, instance_name)
        self.model.instances = [
            s
            for s in self.model.instances
            if s.definition_name != layer_name or s.instance_name != instance_name
        ]
        self._save()

    def list_instances_by_layer(self, layer_name: str) -> list[LayerInstance]:
        logger.debug("Listing instances by layer layer=%s", layer_name)
        return [s for s in self.model.instances if s.definition_name == layer_name]

    def list_instances(self) -> list[LayerInstance]:
        logger.debug("Listing all layers instances")
        return list(self.model.instances)


def _decode_instances(res: requests.Response) -> list[LayerInstance]:
    try:
        raw = res.json()
        return [LayerInstance.from_dict(item) for item in raw or []]
    except (ValueError, AttributeError, TypeError) as exc:
        raise CloudError(f"fail to decode instances JSON response: {exc}") from exc


class CloudInstancesBackend(InstancesBackend):
    """Instances kept by the cloud service."""

    def __init__(self, client: HTTPClient):
        self._client = client

    def _call(self, method: str, path: str, payload: Any = None) -> requests.Response:
        res = self._client.request(method, path, payload)
        if res.status_code != 200:
            raise CloudError(f"HTTP request to {path} failed with status code {res.status_code}")
        return res

    def delete_instance(self, layer_name: str, instance_name: str) -> None:
        self._call("DELETE", f"/v1/definitions/{layer_name}/instances/{instance_name}")

    def get_instance(self, layer_name: str, instance_name: str) -> LayerInstance:
        path = f"/v1/definitions/{layer_name}/instances/{instance_name}"
        res = self._client.request("GET", path)
        if res.status_code == 404:
            raise InstanceNotFoundError(
                f"fail to get instance {instance_name} of definition {layer_name}: "
                "instance not found"
            )
        if res.status_code != 200:
            raise CloudError(f"HTTP request to {path} failed with status code {res.status_code}")
        try:
            return LayerInstance.from_dict(res.json())
        except (ValueError, AttributeError, TypeError) as exc:
            raise CloudError(f"fail to decode instance JSON response: {exc}") from exc

    def list_instances(self) -> list[LayerInstance]:
        return _decode_instances(self._call("GET", "/v1/instances"))

    def list_instances_by_layer(self, layer_name: str) -> list[LayerInstance]:
        return _decode_instances(self._call("GET", f"/v1/definitions/{layer_name}/instances"))

    def save_instance(self, instance: LayerInstance) -> None:
        self._call("POST", "/v1/instances", instance.to_dict())