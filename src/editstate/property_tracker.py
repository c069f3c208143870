"""
Per-entry property divergence bookkeeping.
"""
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from editstate.cloner import BaselineCloner, default_cloner


class PropertyDiffTracker:
    """Records which properties of one entry diverge from baseline.

    Maps property path -> baseline value. A property is present only while its
    current value differs from the captured baseline value; setting it back
    retracts it.
    """

    def __init__(self, cloner: Optional[BaselineCloner] = None):
        self._cloner = cloner or default_cloner
        self._baseline_values: Dict[str, Any] = {}

    def track(self, name: str, baseline_value: Any, new_value: Any) -> bool:
        """Record or retract one property; return True if it now diverges."""
        if self._cloner.equals(new_value, baseline_value):
            self._baseline_values.pop(name, None)
            return False
        if name not in self._baseline_values:
            # First touch captures the baseline value
            self._baseline_values[name] = self._cloner.clone(baseline_value)
        return True

    def retract(self, name: str) -> bool:
        return self._baseline_values.pop(name, _MISSING) is not _MISSING

    def retain_if(self, still_diverges: Callable[[str, Any], bool]) -> None:
        """Drop every recorded property for which still_diverges(name, baseline) is False."""
        for name, baseline_value in list(self._baseline_values.items()):
            if not still_diverges(name, baseline_value):
                del self._baseline_values[name]

    def is_modified(self, name: str) -> bool:
        return name in self._baseline_values

    def baseline_of(self, name: str, default: Any = None) -> Any:
        if name not in self._baseline_values:
            return default
        return self._cloner.clone(self._baseline_values[name])

    def modified_properties(self) -> List[str]:
        return list(self._baseline_values)

    def as_mapping(self) -> Mapping[str, Any]:
        return MappingProxyType(self._baseline_values)

    def clear(self) -> None:
        self._baseline_values.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._baseline_values

    def __iter__(self) -> Iterator[str]:
        return iter(self._baseline_values)

    def __len__(self) -> int:
        return len(self._baseline_values)

    def __bool__(self) -> bool:
        return bool(self._baseline_values)


_MISSING = object()
