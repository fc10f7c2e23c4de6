"""
Component registry.

Maps component identifiers found in data state trees to a render callable
and an optional props validator. Unknown identifiers and rejected props are
reported as ``RenderError`` for the resolver to place in the tree.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import BaseModel

from ..core.errors import RenderError

Validator = Union[Callable[[Dict[str, Any]], Optional[Dict[str, Any]]], type]


@dataclass
class ResolvedComponent:
    """A component node whose props and children are fully resolved"""
    component: str
    path: str
    key: Optional[str] = None
    props: Dict[str, Any] = field(default_factory=dict)
    children: Any = None


@dataclass
class ComponentDefinition:
    """
    How to render one component identifier.

    ``render`` receives the ResolvedComponent and returns anything; without
    it the ResolvedComponent itself is the rendered value. ``validator`` is
    a callable returning the (possibly coerced) props, or a pydantic model
    class the props are validated against.
    """
    render: Optional[Callable[[ResolvedComponent], Any]] = None
    validator: Optional[Validator] = None

    def validate(self, props: Dict[str, Any]) -> Dict[str, Any]:
        if self.validator is None:
            return props
        if isinstance(self.validator, type) and issubclass(self.validator, BaseModel):
            return self.validator.model_validate(props).model_dump(exclude_unset=True)
        validated = self.validator(props)
        return props if validated is None else validated


class ComponentRegistry:
    """
    Registry of component definitions.

    Example:
        components = ComponentRegistry()
        components.register("Text")

        @components.register("Button", validator=ButtonProps)
        def button(node):
            return f"<button>{node.children}</button>"
    """

    def __init__(self, components: Optional[Mapping[str, Any]] = None):
        self._components: Dict[str, ComponentDefinition] = {}
        for component_id, definition in (components or {}).items():
            self.add(component_id, definition)

    @classmethod
    def coerce(cls, components: Union['ComponentRegistry', Mapping[str, Any], None]) -> 'ComponentRegistry':
        if isinstance(components, ComponentRegistry):
            return components
        return cls(components)

    def add(self, component_id: str, definition: Union[ComponentDefinition, Callable, None] = None) -> ComponentDefinition:
        """Add a definition; a bare callable is taken as its render function"""
        if not isinstance(definition, ComponentDefinition):
            definition = ComponentDefinition(render=definition)
        self._components[component_id] = definition
        return definition

    def register(self, component_id: str, render: Optional[Callable] = None, *, validator: Optional[Validator] = None):
        """
        Register a component directly or as a decorator.

        Without a render function the component renders to its
        ResolvedComponent until a decorated function replaces it.
        """
        definition = self.add(component_id, ComponentDefinition(render=render, validator=validator))
        if render is not None:
            return render

        def decorator(fn: Callable) -> Callable:
            definition.render = fn
            return fn

        return decorator

    def get(self, component_id: str) -> Optional[ComponentDefinition]:
        return self._components.get(component_id)

    def __contains__(self, component_id: str) -> bool:
        return component_id in self._components

    def __len__(self) -> int:
        return len(self._components)

    def render(self, node: ResolvedComponent) -> Any:
        """Validate props and render ``node``; failures raise RenderError"""
        definition = self._components.get(node.component)
        if definition is None:
            raise RenderError(f"Unknown component: {node.component}", node.path)

        try:
            props = definition.validate(node.props)
        except Exception as e:
            raise RenderError(f"Invalid props for component: {node.component}. Error: {e}", node.path) from e
        node = replace(node, props=props)

        if definition.render is None:
            return node
        try:
            return definition.render(node)
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"Failed to render component: {node.component}. Error: {e}", node.path) from e
