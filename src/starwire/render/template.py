"""
Resolution Engine

Walks a data state tree, following refs into other stores and rendering
component nodes through a ``ComponentRegistry``. Every ref subscription is
owned by the tree position (and store) that produced it, so re-resolving
after a store change releases exactly the subscriptions the new tree no
longer needs.

Each store is subscribed once however many positions read it; the
position set per store decides when that subscription is released.

Positions are dotted strings: the root is ``root``, a component's props live
under ``root.props[name]`` and its children under ``root.children``, with
``[key]`` appended for list elements (the sibling key or the index).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel

from ..config import RenderConfig
from ..core.datastate import (
    DataStateModel,
    PathSegment,
    RefPath,
    TemplateEvent,
    field_value,
    is_action_event,
    is_component,
    is_event,
    is_ref,
    lookup_value,
    ref_path,
)
from ..core.errors import RenderError
from .components import ComponentRegistry, ResolvedComponent

logger = logging.getLogger(__name__)

ROOT_POSITION = "root"
# Passes allowed for one invalidation before giving up on a store that keeps
# notifying while being read.
MAX_PASSES = 32


class PositionState(str, Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    ERROR = "error"


@dataclass
class _EventContext:
    """The component and prop an event node was found under"""
    component: str = ""
    key: Optional[str] = None
    prop_key: str = ""


@dataclass
class _Pass:
    """Bookkeeping for one resolution pass"""
    snapshot: Dict[str, Any] = field(default_factory=dict)
    live: Set[Tuple[str, str]] = field(default_factory=set)
    stack: Set[Tuple[str, Tuple[PathSegment, ...]]] = field(default_factory=set)
    states: Dict[str, PositionState] = field(default_factory=dict)
    errors: List[RenderError] = field(default_factory=list)


class Template:
    """
    A live resolution of the tree stored at ``path``.

    Args:
        data_source: Anything with ``get(key) -> Store`` and ``send_event``
        components: ComponentRegistry or mapping of component id to
            definition or render callable
        path: Root ref, a store key or ``[store_key, *segments]``
        on_event: Replaces ``data_source.send_event`` for raised events
        on_update: Called with the new value after every resolution
        max_depth: Nesting limit, defaults to ``RenderConfig.max_depth``
    """

    def __init__(
        self,
        data_source: Any,
        components: Any = None,
        path: RefPath = "",
        on_event: Optional[Callable[[TemplateEvent], Any]] = None,
        on_update: Optional[Callable[[Any], None]] = None,
        max_depth: Optional[int] = None,
    ):
        self.data_source = data_source
        self.components = ComponentRegistry.coerce(components)
        self.root = ref_path(path)
        self.on_event = on_event
        self.on_update = on_update
        self.max_depth = max_depth if max_depth is not None else RenderConfig().max_depth
        self.value: Any = None
        self.errors: List[RenderError] = []
        self._owners: Set[Tuple[str, str]] = set()
        self._store_subscriptions: Dict[str, Callable[[], None]] = {}
        self._states: Dict[str, PositionState] = {}
        self._mounted = False
        self._resolving = False
        self._dirty = False

    # Lifecycle

    @property
    def mounted(self) -> bool:
        return self._mounted

    def mount(self) -> Any:
        """Subscribe the root store and return the first resolution"""
        if not self._mounted:
            self._mounted = True
            self._run()
        return self.value

    def unmount(self) -> None:
        """Release every subscription held by this template"""
        self._mounted = False
        self._owners = set()
        subscriptions, self._store_subscriptions = self._store_subscriptions, {}
        for unsubscribe in subscriptions.values():
            unsubscribe()
        self._states = {}

    def __enter__(self) -> 'Template':
        self.mount()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.unmount()

    def state(self, position: str = ROOT_POSITION) -> PositionState:
        return self._states.get(position, PositionState.UNRESOLVED)

    def subscriptions(self) -> List[Tuple[str, str]]:
        """``(position, store_key)`` pairs currently held"""
        return sorted(self._owners)

    # Passes

    def _invalidate(self) -> None:
        if not self._mounted:
            return
        if self._resolving:
            self._dirty = True
            return
        self._run()

    def _run(self) -> None:
        self._resolving = True
        try:
            for _ in range(MAX_PASSES):
                self._dirty = False
                self._resolve_pass()
                if not self._dirty or not self._mounted:
                    break
            else:
                logger.warning(f"Stopped re-resolving {self.root} after {MAX_PASSES} passes")
        finally:
            self._resolving = False

        if self.on_update is not None and self._mounted:
            self.on_update(self.value)

    def _resolve_pass(self) -> None:
        walk = _Pass()
        store_key, segments = self.root
        value = self._resolve_ref(store_key, segments, ROOT_POSITION, walk, 0, _EventContext())

        for position, store_key in sorted(self._owners - walk.live):
            logger.debug(f"Releasing {store_key!r} held at {position}")
        self._owners = walk.live
        held = {store_key for _, store_key in walk.live}
        for store_key in list(self._store_subscriptions):
            if store_key not in held:
                self._store_subscriptions.pop(store_key)()

        self.value = value
        self.errors = walk.errors
        self._states = walk.states

    def _fail(self, walk: _Pass, position: str, message: str) -> RenderError:
        error = RenderError(message, position)
        logger.warning(f"Render error at {position}: {message}")
        walk.errors.append(error)
        walk.states[position] = PositionState.ERROR
        return error

    def _read(self, store_key: str, walk: _Pass) -> Any:
        if store_key not in walk.snapshot:
            walk.snapshot[store_key] = self.data_source.get(store_key).get()
        return walk.snapshot[store_key]

    def _hold(self, position: str, store_key: str, walk: _Pass) -> None:
        walk.live.add((position, store_key))
        if store_key not in self._store_subscriptions:
            self._store_subscriptions[store_key] = self.data_source.get(store_key).subscribe(self._invalidate)

    # Nodes

    def _resolve(
        self,
        node: Any,
        position: str,
        origin: Tuple[str, List[PathSegment]],
        walk: _Pass,
        depth: int,
        context: _EventContext,
    ) -> Any:
        if depth > self.max_depth:
            return self._fail(walk, position, f"Maximum nesting depth of {self.max_depth} exceeded")

        if isinstance(node, (list, tuple)):
            store_key, path = origin
            return [
                self._resolve(
                    item, f"{position}[{self._sibling_key(item, index)}]",
                    (store_key, path + [index]), walk, depth + 1, context,
                )
                for index, item in enumerate(node)
            ]
        if is_component(node):
            return self._resolve_component(node, position, origin, walk, depth)
        if is_ref(node):
            try:
                store_key, segments = ref_path(node)
            except ValueError as e:
                return self._fail(walk, position, str(e))
            return self._resolve_ref(store_key, segments, position, walk, depth, context)
        if is_event(node):
            return self._bind_event(node, origin, context)
        if isinstance(node, dict):
            store_key, path = origin
            return {
                name: self._resolve(
                    item, f"{position}[{name}]", (store_key, path + [name]), walk, depth + 1,
                    _EventContext(context.component, context.key,
                                  f"{context.prop_key}.{name}" if context.prop_key else str(name)),
                )
                for name, item in node.items()
            }
        return node

    @staticmethod
    def _sibling_key(item: Any, index: int) -> Any:
        key = field_value(item, "key") if is_component(item) else None
        return index if key is None else key

    def _resolve_ref(
        self,
        store_key: str,
        segments: List[PathSegment],
        position: str,
        walk: _Pass,
        depth: int,
        context: _EventContext,
    ) -> Any:
        marker = (store_key, tuple(segments))
        if marker in walk.stack:
            return self._fail(walk, position, f"Circular reference to {[store_key, *segments]}")

        walk.states.setdefault(position, PositionState.RESOLVING)
        self._hold(position, store_key, walk)
        target = lookup_value(self._read(store_key, walk), segments)

        walk.stack.add(marker)
        try:
            value = self._resolve(target, position, (store_key, list(segments)), walk, depth + 1, context)
        finally:
            walk.stack.discard(marker)

        if walk.states[position] == PositionState.RESOLVING:
            walk.states[position] = PositionState.RESOLVED
        return value

    def _resolve_component(
        self,
        node: Any,
        position: str,
        origin: Tuple[str, List[PathSegment]],
        walk: _Pass,
        depth: int,
    ) -> Any:
        component_id = field_value(node, "component")
        key = field_value(node, "key")
        if self.components.get(component_id) is None:
            return self._fail(walk, position, f"Unknown component: {component_id}")

        walk.states[position] = PositionState.RESOLVING
        store_key, path = origin
        props = {
            name: self._resolve(
                value, f"{position}.props[{name}]", (store_key, path + ["props", name]),
                walk, depth + 1, _EventContext(component_id, key, name),
            )
            for name, value in (field_value(node, "props") or {}).items()
        }
        children = field_value(node, "children")
        if children is not None:
            children = self._resolve(
                children, f"{position}.children", (store_key, path + ["children"]),
                walk, depth + 1, _EventContext(component_id, key, "children"),
            )

        try:
            rendered = self.components.render(
                ResolvedComponent(component=component_id, path=position, key=key, props=props, children=children)
            )
        except RenderError as e:
            return self._fail(walk, position, e.message)

        walk.states[position] = PositionState.RESOLVED
        return rendered

    # Events

    def _bind_event(self, node: Any, origin: Tuple[str, List[PathSegment]], context: _EventContext) -> Callable:
        store_key, path = origin
        data_state = node if isinstance(node, DataStateModel) else dict(node)

        def make_event(payload: Any = None) -> TemplateEvent:
            return TemplateEvent(
                target={
                    "key": context.key,
                    "component": context.component,
                    "propKey": context.prop_key,
                    "path": [store_key, *path],
                },
                data_state=data_state,
                payload=_plain_payload(payload),
            )

        send = self.on_event or self.data_source.send_event

        if is_action_event(node):
            def fire_action():
                return send(make_event())
            return fire_action

        def fire_handler(payload: Any = None):
            return send(make_event(payload))
        return fire_handler


def _plain_payload(payload: Any) -> Any:
    """Drop values that cannot travel as JSON, such as UI event objects"""
    if payload is None or isinstance(payload, (str, int, float, bool)):
        return payload
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    if isinstance(payload, dict):
        return {str(k): _plain_payload(v) for k, v in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [_plain_payload(item) for item in payload]
    return None
