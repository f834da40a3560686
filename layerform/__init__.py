"""Layered staging environments: definitions, instances, contexts and the layerform command."""

__version__ = "0.1.0"