"""Dungeon catalog schemas and registries."""

from .loader import CatalogLoadError, DungeonCatalog
from .models import DungeonDefinition, FloorTemplate, LootEntry, RelicDrop, SchemaError
from .registry import DungeonRegistry

__all__ = [
    "CatalogLoadError",
    "DungeonCatalog",
    "DungeonDefinition",
    "DungeonRegistry",
    "FloorTemplate",
    "LootEntry",
    "RelicDrop",
    "SchemaError",
]
