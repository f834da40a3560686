"""Layer definitions, layer instances and environment variables."""

from __future__ import annotations

import base64
import binascii
import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

DEFAULT_LAYER_INSTANCE_NAME = "default"
CURRENT_INSTANCE_VERSION = 1


def _encode_bytes(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _decode_bytes(value: Any) -> bytes:
    if value is None:
        return b""
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, TypeError) as exc:
        raise ValueError(f"invalid base64 data: {value!r}") from exc


class LayerInstanceStatus(str, Enum):
    """Lifecycle state of a layer instance."""

    SPAWNING = "spawning"
    ALIVE = "alive"
    FAULTY = "faulty"
    KILLING = "killing"
    REFRESHING = "refreshing"


def _parse_status(value: Any) -> LayerInstanceStatus | str:
    if not value:
        return ""
    try:
        return LayerInstanceStatus(value)
    except ValueError:
        return str(value)


def _status_text(status: LayerInstanceStatus | str) -> str:
    if isinstance(status, LayerInstanceStatus):
        return status.value
    return str(status or "")


class InstanceVersionError(ValueError):
    """A stored layer instance has a version this program cannot read."""


@dataclass
class LayerDefinitionFile:
    path: str
    content: bytes = b""

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "content": _encode_bytes(self.content)}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> LayerDefinitionFile:
        return cls(path=raw.get("path") or "", content=_decode_bytes(raw.get("content")))


@dataclass
class LayerDefinition:
    name: str
    files: list[LayerDefinitionFile] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    sha: bytes = b""

    def to_dict(self) -> dict[str, Any]:
        return {
            "sha": _encode_bytes(self.sha),
            "name": self.name,
            "files": [f.to_dict() for f in self.files],
            "dependencies": list(self.dependencies),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> LayerDefinition:
        return cls(
            name=raw.get("name") or "",
            files=[LayerDefinitionFile.from_dict(f) for f in raw.get("files") or []],
            dependencies=list(raw.get("dependencies") or []),
            sha=_decode_bytes(raw.get("sha")),
        )


def layer_definition_sha(layer: LayerDefinition) -> bytes:
    """SHA-1 digest over the layer's files and its sorted dependencies."""
    hasher = hashlib.sha1()
    for f in layer.files:
        hasher.update(("path:" + f.path + "\n").encode())
        hasher.update(b"content:")
        hasher.update(f.content)
        hasher.update(b"\n")

    hasher.update(b"deps:")
    for dep in sorted(layer.dependencies):
        hasher.update(dep.encode())

    return hasher.digest()


@dataclass
class EnvVar:
    name: str
    value: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> EnvVar:
        return cls(name=raw.get("name") or "", value=raw.get("value") or "")


@dataclass
class LayerInstance:
    definition_name: str
    instance_name: str
    definition_sha: bytes = b""
    dependencies_instance: dict[str, str] = field(default_factory=dict)
    state: bytes = b""
    status: LayerInstanceStatus | str = ""
    version: int = CURRENT_INSTANCE_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "definitionSHA": _encode_bytes(self.definition_sha),
            "definitionName": self.definition_name,
            "instanceName": self.instance_name,
            "dependenciesInstance": dict(self.dependencies_instance),
            "bytes": _encode_bytes(self.state),
            "status": _status_text(self.status),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> LayerInstance:
        """Decode an instance, upgrading the version 0 layout when needed."""
        version = raw.get("version")
        if version is None:
            version = 0
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            raise InstanceVersionError(f"got unexpected version {version} of layer instance")

        if version == CURRENT_INSTANCE_VERSION:
            return cls(
                definition_name=raw.get("definitionName") or "",
                instance_name=raw.get("instanceName") or "",
                definition_sha=_decode_bytes(raw.get("definitionSHA")),
                dependencies_instance=dict(raw.get("dependenciesInstance") or {}),
                state=_decode_bytes(raw.get("bytes")),
                status=_parse_status(raw.get("status")),
                version=CURRENT_INSTANCE_VERSION,
            )

        if version > CURRENT_INSTANCE_VERSION:
            raise InstanceVersionError(
                "layer instance was created using a newer version of layerform"
            )

        return LayerInstanceV0.from_dict(raw).to_layer_instance()

    def get_dependency_instance_name(self, dep: str) -> str:
        return self.dependencies_instance.get(dep, DEFAULT_LAYER_INSTANCE_NAME)


@dataclass
class LayerInstanceV0:
    layer_name: str
    state_name: str
    layer_sha: bytes = b""
    dependencies_state: dict[str, str] = field(default_factory=dict)
    state: bytes = b""
    status: LayerInstanceStatus | str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "layerSHA": _encode_bytes(self.layer_sha),
            "layerName": self.layer_name,
            "stateName": self.state_name,
            "dependenciesState": dict(self.dependencies_state),
            "bytes": _encode_bytes(self.state),
            "status": _status_text(self.status),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> LayerInstanceV0:
        return cls(
            layer_name=raw.get("layerName") or "",
            state_name=raw.get("stateName") or "",
            layer_sha=_decode_bytes(raw.get("layerSHA")),
            dependencies_state=dict(raw.get("dependenciesState") or {}),
            state=_decode_bytes(raw.get("bytes")),
            status=_parse_status(raw.get("status")),
        )

    def to_layer_instance(self) -> LayerInstance:
        return LayerInstance(
            definition_name=self.layer_name,
            instance_name=self.state_name,
            definition_sha=self.layer_sha,
            dependencies_instance=dict(self.dependencies_state),
            state=self.state,
            status=self.status,
            version=CURRENT_INSTANCE_VERSION,
        )