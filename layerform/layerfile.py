"""Reading layer definition configuration files."""

from __future__ import annotations

import glob
import json
import os
import re
from dataclasses import dataclass, field

from layerform.data import LayerDefinition, LayerDefinitionFile, layer_definition_sha

_NAME_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]*[A-Za-z0-9]")


class InvalidDefinitionNameError(ValueError):
    """A layer definition name is not allowed."""

    def __init__(self, name: str):
        super().__init__(f"{name}: invalid layer definition name")
        self.name = name


@dataclass
class LayerfileLayer:
    name: str
    files: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)


@dataclass
class Layerfile:
    layers: list[LayerfileLayer] = field(default_factory=list)
    source_filepath: str = ""

    def to_layers(self) -> list[LayerDefinition]:
        """Read the files of every layer, relative to the layer file."""
        parent = os.path.dirname(self.source_filepath)
        base_dir = os.path.normpath(parent) if parent else "."

        definitions = []
        for entry in self.layers:
            if not _NAME_PATTERN.fullmatch(entry.name):
                raise InvalidDefinitionNameError(entry.name)

            files = []
            for pattern in entry.files:
                for fpath in sorted(glob.glob(os.path.join(base_dir, pattern))):
                    with open(fpath, "rb") as fh:
                        content = fh.read()
                    files.append(
                        LayerDefinitionFile(path=os.path.relpath(fpath, base_dir), content=content)
                    )

            layer = LayerDefinition(
                name=entry.name, files=files, dependencies=list(entry.dependencies)
            )
            layer.sha = layer_definition_sha(layer)
            definitions.append(layer)

        return definitions


def from_file(source_filepath: str) -> Layerfile:
    """Parse a layer definition configuration file."""
    with open(source_filepath, encoding="utf-8") as fh:
        raw = json.load(fh)

    if not isinstance(raw, dict):
        raise ValueError(f"fail to decode {source_filepath} into layerfile")

    layers = [
        LayerfileLayer(
            name=entry.get("name") or "",
            files=list(entry.get("files") or []),
            dependencies=list(entry.get("dependencies") or []),
        )
        for entry in raw.get("layers") or []
    ]
    return Layerfile(layers=layers, source_filepath=source_filepath)