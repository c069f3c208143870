"""
Editing session over a table, a config record and a folder of assets.

Run with:  python examples/table_editing.py
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List

from editstate import (
    DataSourceRegistry,
    EditableAssetDataSource,
    EditableKeyValueDataSource,
    EditableSingleDataSource,
    InMemoryAssetRepository,
    InMemorySingleRepository,
    InMemoryTableRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class ItemData:
    id: str
    name: str
    price: int = 0
    tags: List[str] = field(default_factory=list)


@dataclass
class GameConfigData:
    title: str = "Untitled"
    max_level: int = 50


@dataclass
class CharacterSheet:
    name: str
    hp: int = 100


async def main() -> None:
    items = InMemoryTableRepository({
        "sword": ItemData("sword", "Sword", price=100),
        "shield": ItemData("shield", "Shield", price=80),
    })
    config = InMemorySingleRepository(GameConfigData(title="Quest"))
    characters = InMemoryAssetRepository()
    characters.seed(CharacterSheet("Hero"), "characters/hero.json")

    item_source = EditableKeyValueDataSource(items, name="items")
    config_source = EditableSingleDataSource(config, name="config")
    character_source = EditableAssetDataSource(characters, name="characters")
    await character_source.initialize()

    registry = DataSourceRegistry()
    registry.register("items", item_source)
    registry.register("config", config_source)
    registry.register("characters", character_source)
    registry.on_modified_state_changed(
        lambda name, changed: logger.info(f"{name}: {'unsaved changes' if changed else 'clean'}")
    )

    # Edits
    item_source.track_property_change("sword", "price", 120)
    item_source.add("potion", ItemData("potion", "Potion", price=5))
    item_source.delete("shield")
    config_source.set_property("max_level", 60)

    villain = character_source.add_new(CharacterSheet("Villain", hp=250), "characters/villain.json")
    character_source.update_metadata(villain.id, lambda m: setattr(m, "display_name", "The Villain"))

    for name in registry.get_modified_names():
        logger.info(f"{name}: {registry.get(name).get_change_summary()}")
    logger.info(f"sword.price was {item_source.get_property_baseline_value('sword', 'price')}")

    saved = await registry.save_all()
    logger.info(f"saved {saved}")
    logger.info(f"items on disk: {sorted(items.keys())}")
    logger.info(f"character files: {characters.file_paths()}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(name)s %(levelname)s %(message)s")
    asyncio.run(main())
