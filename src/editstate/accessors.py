"""
Per-type property accessor tables.

Tracked types are edited through string property names ("name",
"stats.attack"). Instead of reflecting on every edit, each type gets an
accessor table built once: dotted path -> typed get/set closures. Nested
dataclass fields are flattened into dotted paths, the same way flat parameter
storage walks nested configs.

Resolution order for a type:
1. Accessors registered explicitly with register_accessors()
2. A ``__tracked_properties__`` declaration on the class
3. Dataclass fields (recursing into nested dataclasses)
4. Parameters of ``__init__`` along the MRO

Plain dict values get a per-instance table whose entries are created on demand.
"""
from dataclasses import dataclass, fields, is_dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union, get_args, get_origin
import inspect
import types
import logging

logger = logging.getLogger(__name__)

Getter = Callable[[Any], Any]
Setter = Callable[[Any, Any], None]

# `X | None` annotations (3.10+)
_UnionType = getattr(types, 'UnionType', Union)


class AccessorError(AttributeError):
    """Raised when a property name has no accessor on the tracked type."""


@dataclass(frozen=True)
class PropertyAccessor:
    """Typed get/set pair for one dotted property path.

    ``is_leaf`` is False for nested dataclass containers; container paths can be
    edited as a whole but are skipped when diffing a full value replacement.
    """
    path: str
    getter: Getter
    setter: Setter
    is_leaf: bool = True

    def through(self, outer: Getter, prefix: str = '') -> 'PropertyAccessor':
        """Re-root this accessor under an object reachable via ``outer``."""
        getter, setter = self.getter, self.setter
        return PropertyAccessor(
            path=f'{prefix}{self.path}',
            getter=lambda obj: getter(outer(obj)),
            setter=lambda obj, value: setter(outer(obj), value),
            is_leaf=self.is_leaf,
        )


class AccessorTable:
    """Immutable mapping of dotted property path -> PropertyAccessor."""

    def __init__(self, owner: Any, accessors: Dict[str, PropertyAccessor]):
        self.owner = owner
        self._accessors = dict(accessors)

    def get(self, path: str) -> PropertyAccessor:
        accessor = self._accessors.get(path)
        if accessor is None:
            owner_name = getattr(self.owner, '__name__', str(self.owner))
            raise AccessorError(f"{owner_name} has no tracked property '{path}'")
        return accessor

    def leaf_paths(self) -> List[str]:
        return [path for path, accessor in self._accessors.items() if accessor.is_leaf]

    def through(self, outer: Getter, prefix: str = '') -> 'AccessorTable':
        """Table for a wrapper object whose tracked value is ``outer(wrapper)``."""
        return AccessorTable(
            self.owner,
            {f'{prefix}{path}': accessor.through(outer, prefix) for path, accessor in self._accessors.items()},
        )

    def without(self, *paths: str) -> 'AccessorTable':
        """Table with the given paths (and anything nested under them) removed."""
        return AccessorTable(self.owner, {
            path: accessor for path, accessor in self._accessors.items()
            if not any(path == p or path.startswith(f'{p}.') for p in paths)
        })

    def merged(self, other: 'AccessorTable') -> 'AccessorTable':
        combined = dict(self._accessors)
        combined.update(other._accessors)
        return AccessorTable(self.owner, combined)

    def __contains__(self, path: object) -> bool:
        return path in self._accessors

    def __iter__(self) -> Iterator[str]:
        return iter(self._accessors)

    def __len__(self) -> int:
        return len(self._accessors)

    def __repr__(self) -> str:
        owner_name = getattr(self.owner, '__name__', str(self.owner))
        return f"AccessorTable({owner_name}, paths={list(self._accessors)})"


class MappingAccessorTable(AccessorTable):
    """Accessor table for dict values: any key is a property, created on demand."""

    def __init__(self, instance: Dict[str, Any]):
        super().__init__(dict, {key: _item_accessor(key) for key in instance})

    def get(self, path: str) -> PropertyAccessor:
        if path not in self._accessors:
            self._accessors[path] = _item_accessor(path)
        return self._accessors[path]


# Built tables, keyed by type. Built once, reused for every tracked value of that type.
_accessor_tables: Dict[type, AccessorTable] = {}

# Explicit registrations: type -> {path: (getter, setter)}
_registered_accessors: Dict[type, Dict[str, Tuple[Getter, Setter]]] = {}


def register_accessors(obj_type: type, accessors: Dict[str, Tuple[Getter, Setter]]) -> None:
    """Register explicit get/set closures for a type, replacing introspection.

    Example:
        register_accessors(Vector, {
            'x': (lambda v: v.x, lambda v, value: v.set_x(value)),
        })
    """
    _registered_accessors[obj_type] = dict(accessors)
    _accessor_tables.pop(obj_type, None)
    logger.debug(f"Registered {len(accessors)} accessors for {obj_type.__name__}")


def get_accessor_table(obj_type: type) -> AccessorTable:
    """Get (building on first use) the accessor table for a type."""
    table = _accessor_tables.get(obj_type)
    if table is None:
        table = AccessorTable(obj_type, _build_accessors(obj_type))
        _accessor_tables[obj_type] = table
        logger.debug(f"Built accessor table for {obj_type.__name__}: {list(table)}")
    return table


def accessors_for(value: Any) -> AccessorTable:
    """Accessor table for a tracked value (per-type, or per-instance for dicts)."""
    if isinstance(value, dict):
        return MappingAccessorTable(value)
    return get_accessor_table(type(value))


def clear_accessor_cache() -> None:
    """Forget built tables (registrations are kept)."""
    _accessor_tables.clear()


def _build_accessors(obj_type: type) -> Dict[str, PropertyAccessor]:
    registered = _registered_accessors.get(obj_type)
    if registered is not None:
        return {
            path: PropertyAccessor(path=path, getter=getter, setter=setter)
            for path, (getter, setter) in registered.items()
        }

    declared = getattr(obj_type, '__tracked_properties__', None)
    if declared is not None:
        return {name: _attribute_accessor(name) for name in declared}

    result: Dict[str, PropertyAccessor] = {}
    if is_dataclass(obj_type):
        _extract_dataclass_accessors(obj_type, prefix='', outer=None, result=result)
    else:
        for name in _init_parameter_names(obj_type):
            result[name] = _attribute_accessor(name)
    return result


def _extract_dataclass_accessors(
    obj_type: type,
    prefix: str,
    outer: Optional[Getter],
    result: Dict[str, PropertyAccessor],
) -> None:
    """Recursively flatten dataclass fields into dotted-path accessors."""
    for field in fields(obj_type):
        accessor = _attribute_accessor(field.name)
        nested_type = _get_nested_dataclass_type(field.type)
        if nested_type is not None:
            accessor = PropertyAccessor(accessor.path, accessor.getter, accessor.setter, is_leaf=False)
        if outer is not None:
            accessor = accessor.through(outer, prefix)
        result[accessor.path] = accessor

        if nested_type is not None and nested_type is not obj_type:
            container_getter = accessor.getter
            _extract_dataclass_accessors(
                nested_type,
                prefix=f'{accessor.path}.',
                outer=container_getter,
                result=result,
            )


def _get_nested_dataclass_type(field_type: Any) -> Optional[type]:
    """Dataclass type behind a field annotation (plain or Optional), else None."""
    origin = get_origin(field_type)
    if origin is Union or origin is _UnionType:
        args = [arg for arg in get_args(field_type) if arg is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and is_dataclass(args[0]):
            return args[0]
        return None
    if isinstance(field_type, type) and is_dataclass(field_type):
        return field_type
    return None


def _init_parameter_names(obj_type: type) -> List[str]:
    """Constructor parameter names along the MRO, most specific first."""
    names: List[str] = []
    for cls in obj_type.__mro__:
        if cls is object or cls.__init__ is object.__init__:
            continue
        try:
            sig = inspect.signature(cls.__init__)
        except (ValueError, TypeError):
            continue
        for name, param in sig.parameters.items():
            if name == 'self' or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            if name not in names:
                names.append(name)
    return names


def _attribute_accessor(name: str) -> PropertyAccessor:
    return PropertyAccessor(
        path=name,
        getter=lambda obj: getattr(obj, name) if obj is not None else None,
        setter=lambda obj, value: setattr(obj, name, value),
    )


def _item_accessor(key: str) -> PropertyAccessor:
    return PropertyAccessor(
        path=key,
        getter=lambda obj: obj.get(key) if obj is not None else None,
        setter=lambda obj, value: obj.__setitem__(key, value),
    )
