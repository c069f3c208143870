"""Pytest configuration and shared fixtures."""
import pytest
from dataclasses import dataclass, field
from typing import List, Optional

from editstate import (
    InMemoryAssetRepository,
    InMemorySingleRepository,
    InMemoryTableRepository,
    reset_engine_config,
)


@dataclass
class Row:
    """Table row with a string key."""
    id: str
    name: str


@dataclass
class Stats:
    attack: int = 10
    defense: int = 5


@dataclass
class Character:
    """Row with a nested dataclass and a list field."""
    id: str
    name: str
    stats: Stats = field(default_factory=Stats)
    tags: List[str] = field(default_factory=list)
    mentor: Optional[Stats] = None


@dataclass
class GameConfig:
    """Single-record configuration."""
    title: str = "Game"
    max_players: int = 4
    difficulty: str = "normal"


@dataclass
class Sprite:
    """Asset payload."""
    name: str
    width: int = 32
    height: int = 32


class RecordingTableRepository(InMemoryTableRepository):
    """Table repository that journals every call in order."""

    def __init__(self, items=None):
        super().__init__(items)
        self.calls = []

    def add(self, key, data):
        self.calls.append(('add', key))
        super().add(key, data)

    def update(self, key, data):
        self.calls.append(('update', key))
        super().update(key, data)

    def remove(self, key):
        self.calls.append(('remove', key))
        return super().remove(key)

    async def save(self):
        self.calls.append(('save', None))
        await super().save()


class FailingTableRepository(RecordingTableRepository):
    """Rejects saves while ``fail`` is set."""

    def __init__(self, items=None):
        super().__init__(items)
        self.fail = True

    async def _commit(self, items, operations):
        if self.fail:
            raise IOError("disk full")


class FailingSingleRepository(InMemorySingleRepository):
    def __init__(self, current=None):
        super().__init__(current)
        self.fail = True

    async def _commit(self, data):
        if self.fail:
            raise IOError("disk full")


class FailingAssetRepository(InMemoryAssetRepository):
    def __init__(self):
        super().__init__()
        self.fail = True

    async def _commit(self, payload_files, metadata_files, operations):
        if self.fail:
            raise IOError("disk full")


@pytest.fixture(autouse=True)
def reset_config():
    """Restore the default engine configuration around each test."""
    reset_engine_config()
    yield
    reset_engine_config()


@pytest.fixture
def rows():
    return {"1": Row("1", "A"), "2": Row("2", "B")}


@pytest.fixture
def table_repo(rows):
    return RecordingTableRepository(rows)


@pytest.fixture
def single_repo():
    return InMemorySingleRepository(GameConfig())


@pytest.fixture
def asset_repo():
    repo = InMemoryAssetRepository()
    repo.seed(Sprite("hero"), "sprites/hero.json")
    repo.seed(Sprite("slime", width=16, height=16), "sprites/slime.json")
    return repo
