"""
Change tracking for editable data sources.

This package sits between a data editor and its persistent repositories. It
keeps a baseline of every loaded entity, applies edits to working copies, and
answers at any time what changed and from what, down to single properties.
Nothing reaches a repository until save() is awaited, and a failed save keeps
every pending change for retry.

Key Features:
- Per-key state machine (UNCHANGED / ADDED / MODIFIED / DELETED)
- Property-level diffs with per-property baseline values and revert
- Accessor tables built once per type (nested dataclass fields as dotted paths)
- Transition-only "unsaved changes" notifications
- Key-value table, single-record and file-identity asset data sources

Quick Start:
    >>> from editstate import EditableKeyValueDataSource, InMemoryTableRepository
    >>> from myapp.models import Row
    >>>
    >>> repo = InMemoryTableRepository({"1": Row("1", "A"), "2": Row("2", "B")})
    >>> source = EditableKeyValueDataSource(repo)
    >>>
    >>> source.track_property_change("1", "name", "A2")
    >>> source.get_modified_properties("1")
    ['name']
    >>> await source.save()   # repository.update("1", ...) then repository.save()

Modules:
    - tracker: RepositoryChangeTracker, the baseline-diff engine
    - tracked_entry / property_tracker: per-key record and property diff
    - accessors / cloner: property get/set tables and baseline cloning
    - key_value_source / single_source / asset_source: editable data sources
    - repositories: repository interfaces and in-memory implementations
    - registry: multi-source unsaved-changes aggregation
    - config: engine configuration
"""

# Core engine
from editstate.change_state import ChangeState
from editstate.tracker import RepositoryChangeTracker, DuplicateKeyError
from editstate.tracked_entry import TrackedEntry
from editstate.property_tracker import PropertyDiffTracker
from editstate.change_summary import ChangeEntry, ChangeSummary

# Accessors and cloning
from editstate.accessors import (
    AccessorError,
    AccessorTable,
    PropertyAccessor,
    accessors_for,
    get_accessor_table,
    register_accessors,
)
from editstate.cloner import BaselineCloner, register_clone, deep_clone

# Assets
from editstate.assets import Asset, AssetId, AssetMetadata, AssetSummary

# Repositories
from editstate.repositories import (
    TableRepository,
    SingleRepository,
    AssetRepository,
    InMemoryTableRepository,
    InMemorySingleRepository,
    InMemoryAssetRepository,
)

# Data sources
from editstate.data_source_base import EditableDataSourceBase
from editstate.key_value_source import EditableKeyValueDataSource
from editstate.single_source import EditableSingleDataSource, UnsupportedOperationError
from editstate.asset_source import EditableAssetDataSource
from editstate.registry import DataSourceRegistry

# Configuration
from editstate.config import (
    EngineConfig,
    set_engine_config,
    get_engine_config,
    update_engine_config,
    reset_engine_config,
)

__all__ = [
    # Core engine
    'ChangeState',
    'RepositoryChangeTracker',
    'DuplicateKeyError',
    'TrackedEntry',
    'PropertyDiffTracker',
    'ChangeEntry',
    'ChangeSummary',
    # Accessors and cloning
    'AccessorError',
    'AccessorTable',
    'PropertyAccessor',
    'accessors_for',
    'get_accessor_table',
    'register_accessors',
    'BaselineCloner',
    'register_clone',
    'deep_clone',
    # Assets
    'Asset',
    'AssetId',
    'AssetMetadata',
    'AssetSummary',
    # Repositories
    'TableRepository',
    'SingleRepository',
    'AssetRepository',
    'InMemoryTableRepository',
    'InMemorySingleRepository',
    'InMemoryAssetRepository',
    # Data sources
    'EditableDataSourceBase',
    'EditableKeyValueDataSource',
    'EditableSingleDataSource',
    'UnsupportedOperationError',
    'EditableAssetDataSource',
    'DataSourceRegistry',
    # Configuration
    'EngineConfig',
    'set_engine_config',
    'get_engine_config',
    'update_engine_config',
    'reset_engine_config',
]

__version__ = '1.0.0'
__description__ = 'Baseline-diff change tracking for editable data sources'
