"""
Baseline cloning and value comparison.

Deep copy is part of a tracked type's contract rather than a side effect of a
serializer. A type opts in with a ``__clone__(self)`` method or a function
registered via register_clone(); everything else falls back to copy.deepcopy.
"""
from typing import Any, Callable, Dict, Optional
import copy
import logging

logger = logging.getLogger(__name__)

CloneFn = Callable[[Any], Any]

# Explicit clone functions, looked up along the MRO of the value's type
_clone_functions: Dict[type, CloneFn] = {}

# Immutable scalars are shared, never copied
_IMMUTABLE_TYPES = (str, bytes, int, float, complex, bool, type(None), frozenset)


def register_clone(obj_type: type, clone_fn: CloneFn) -> None:
    """Register the deep-copy function for a type (and its subclasses)."""
    _clone_functions[obj_type] = clone_fn


def unregister_clone(obj_type: type) -> None:
    _clone_functions.pop(obj_type, None)


class BaselineCloner:
    """Deep-copy and equality capability used to snapshot baselines.

    A tracker never stores or returns a value without passing it through
    clone(), so a snapshot is independent of any live working copy.
    """

    def clone(self, value: Any) -> Any:
        if isinstance(value, _IMMUTABLE_TYPES):
            return value

        clone_fn = self._lookup_clone_fn(type(value))
        if clone_fn is not None:
            return clone_fn(value)

        own_clone = getattr(value, '__clone__', None)
        if callable(own_clone):
            return own_clone()

        return copy.deepcopy(value)

    def equals(self, a: Any, b: Any) -> bool:
        """Value equality; identity short-circuits."""
        if a is b:
            return True
        if a is None or b is None:
            return False
        return bool(a == b)

    @staticmethod
    def _lookup_clone_fn(obj_type: type) -> Optional[CloneFn]:
        for cls in obj_type.__mro__:
            clone_fn = _clone_functions.get(cls)
            if clone_fn is not None:
                return clone_fn
        return None


default_cloner = BaselineCloner()


def deep_clone(value: Any) -> Any:
    """Clone with the default cloner."""
    return default_cloner.clone(value)
