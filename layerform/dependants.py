"""Finding layer instances that depend on another instance."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from layerform.layerdefinitions import DefinitionsBackend
from layerform.layerinstances import InstancesBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependenceInfo:
    """One dependant instance."""

    definition_name: str
    instance_name: str


def has_dependants(
    instances_backend: InstancesBackend,
    definitions_backend: DefinitionsBackend,
    layer_name: str,
    instance_name: str,
) -> bool:
    """Whether any instance of a layer built on ``layer_name`` uses ``instance_name``."""
    logger.debug(
        "Checking if layer has dependants layer=%s instance=%s", layer_name, instance_name
    )
    for definition in definitions_backend.list_layers():
        if layer_name not in definition.dependencies:
            continue
        for instance in instances_backend.list_instances_by_layer(definition.name):
            if instance.get_dependency_instance_name(layer_name) == instance_name:
                return True
    return False


def get_dependants(
    instances_backend: InstancesBackend,
    definitions_backend: DefinitionsBackend,
    layer_name: str,
    instance_name: str,
    visited: set[str] | None = None,
) -> list[DependenceInfo]:
    """Instances that depend on the given instance, searching child layers too."""
    logger.debug("Finding dependant layers layer=%s instance=%s", layer_name, instance_name)
    if visited is None:
        visited = set()

    definitions = definitions_backend.list_layers()
    dependants: list[DependenceInfo] = []
    visited.add(layer_name)

    for definition in definitions:
        if layer_name not in definition.dependencies:
            continue
        for instance in instances_backend.list_instances_by_layer(definition.name):
            if instance.get_dependency_instance_name(layer_name) == instance_name:
                dependants.append(DependenceInfo(definition.name, instance.instance_name))
            elif definition.name not in visited:
                dependants.extend(
                    get_dependants(
                        instances_backend,
                        definitions_backend,
                        definition.name,
                        instance.instance_name,
                        visited,
                    )
                )

    return dependants