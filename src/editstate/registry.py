"""
DataSourceRegistry: named data sources behind one "unsaved changes" view.

An editor window registers each open data source under a name (usually the
table or config type) and binds its global indicator and "Save All" command
to the registry.

Callbacks receive (name, has_modifications) whenever one source flips.
"""
from typing import Callable, Dict, List, Optional
import logging

from editstate.data_source_base import EditableDataSourceBase

logger = logging.getLogger(__name__)

SourceCallback = Callable[[str, bool], None]


class DataSourceRegistry:
    """Registry of editable data sources keyed by name.

    Not thread-safe (all operations expected on the UI thread).
    """

    def __init__(self):
        self._sources: Dict[str, EditableDataSourceBase] = {}
        self._forwarders: Dict[str, Callable[[bool], None]] = {}
        self._on_modified_state_changed_callbacks: List[SourceCallback] = []

    # ========== Registration ==========

    def register(self, name: str, source: EditableDataSourceBase) -> None:
        """Register source under name, replacing any previous registration."""
        if name in self._sources:
            self.unregister(name)

        def forward(has_changes: bool, _name: str = name) -> None:
            self._fire_modified_state_changed(_name, has_changes)

        source.on_modified_state_changed(forward)
        self._sources[name] = source
        self._forwarders[name] = forward
        logger.debug(f"Registered data source '{name}' ({type(source).__name__})")

    def unregister(self, name: str) -> Optional[EditableDataSourceBase]:
        source = self._sources.pop(name, None)
        forward = self._forwarders.pop(name, None)
        if source is not None and forward is not None:
            source.off_modified_state_changed(forward)
            logger.debug(f"Unregistered data source '{name}'")
        return source

    def get(self, name: str) -> Optional[EditableDataSourceBase]:
        return self._sources.get(name)

    def names(self) -> List[str]:
        return list(self._sources)

    def __contains__(self, name: object) -> bool:
        return name in self._sources

    def __len__(self) -> int:
        return len(self._sources)

    # ========== Aggregate state ==========

    def has_any_changes(self) -> bool:
        return any(source.has_modifications for source in self._sources.values())

    def get_modified_names(self) -> List[str]:
        return [name for name, source in self._sources.items() if source.has_modifications]

    # ========== Save / revert ==========

    async def save(self, name: str) -> None:
        source = self._sources.get(name)
        if source is None:
            raise KeyError(f"No data source registered as '{name}'")
        await source.save()

    async def save_all(self) -> List[str]:
        """Save every modified source in registration order.

        Stops at the first failure and re-raises it; sources saved before the
        failure stay saved. Returns the names saved.
        """
        saved: List[str] = []
        for name in self.get_modified_names():
            try:
                await self._sources[name].save()
            except Exception:
                logger.warning(f"save_all stopped at '{name}' after saving {saved}")
                raise
            saved.append(name)
        if saved:
            logger.info(f"Saved {len(saved)} data source(s): {saved}")
        return saved

    def revert_all(self) -> None:
        for source in self._sources.values():
            source.revert()

    # ========== Notification ==========

    def on_modified_state_changed(self, callback: SourceCallback) -> None:
        if callback not in self._on_modified_state_changed_callbacks:
            self._on_modified_state_changed_callbacks.append(callback)

    def off_modified_state_changed(self, callback: SourceCallback) -> None:
        if callback in self._on_modified_state_changed_callbacks:
            self._on_modified_state_changed_callbacks.remove(callback)

    def _fire_modified_state_changed(self, name: str, has_changes: bool) -> None:
        for callback in list(self._on_modified_state_changed_callbacks):
            try:
                callback(name, has_changes)
            except Exception as e:
                logger.warning(f"Error in registry modified_state_changed callback: {e}")
