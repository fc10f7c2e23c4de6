"""
Starwire render: the resolution engine and the component registry.
"""

from .components import ComponentDefinition, ComponentRegistry, ResolvedComponent
from .template import PositionState, Template

__all__ = [
    "ComponentDefinition",
    "ComponentRegistry",
    "ResolvedComponent",
    "PositionState",
    "Template",
]
