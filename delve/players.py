"""Concurrency-safe persistence and progression helpers for player records."""

from __future__ import annotations

import asyncio
import copy
import json
from pathlib import Path
from typing import Dict, MutableMapping, Optional

__all__ = [
    "DEFAULT_BIOME",
    "PlayerRecord",
    "PlayerRepository",
    "add_item",
    "add_xp",
    "default_player_record",
    "xp_to_next_level",
]

PlayerRecord = MutableMapping[str, object]

DEFAULT_BIOME = "emerald_grove"
LEVEL_UP_HP = 10
LEVEL_UP_MANA = 5


def default_player_record(player_id: int | str, username: str) -> Dict[str, object]:
    """Return a fresh record for a player who has never been stored."""

    return {
        "id": str(player_id),
        "username": username,
        "level": 1,
        "xp": 0,
        "hp": 100,
        "maxHp": 100,
        "mana": 50,
        "maxMana": 50,
        "coins": 0,
        "inventory": {},
        "stats": {"dungeonsCleared": 0},
        "exploration": {"currentBiome": DEFAULT_BIOME},
        "flags": {},
    }


def xp_to_next_level(level: int) -> int:
    return 100 * max(1, level)


def add_xp(record: PlayerRecord, amount: int) -> bool:
    """Add ``amount`` experience to ``record``, levelling up as needed.

    Returns ``True`` when at least one level was gained.
    """

    if amount <= 0:
        return False
    level = int(record.get("level", 1) or 1)
    xp = int(record.get("xp", 0) or 0) + int(amount)
    leveled = False
    while xp >= xp_to_next_level(level):
        xp -= xp_to_next_level(level)
        level += 1
        leveled = True
        record["maxHp"] = int(record.get("maxHp", 100) or 100) + LEVEL_UP_HP
        record["maxMana"] = int(record.get("maxMana", 50) or 50) + LEVEL_UP_MANA
        record["hp"] = record["maxHp"]
        record["mana"] = record["maxMana"]
    record["level"] = level
    record["xp"] = xp
    return leveled


def add_item(record: PlayerRecord, item_id: str, quantity: int = 1) -> None:
    if quantity <= 0:
        return
    inventory = record.get("inventory")
    if not isinstance(inventory, MutableMapping):
        inventory = {}
        record["inventory"] = inventory
    inventory[item_id] = int(inventory.get(item_id, 0) or 0) + int(quantity)


class PlayerRepository:
    """Store player records keyed by player id backed by a JSON file."""

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path
        self._lock = asyncio.Lock()
        self._cache: Dict[str, Dict[str, object]] = {}
        self._loaded = False
        self._storage_serial: Optional[tuple[int, int]] = None

    async def _ensure_loaded(self) -> None:
        current_serial = await self._current_storage_serial()
        if self._loaded and self._storage_serial == current_serial:
            return
        if current_serial is None:
            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            self._cache = {}
            self._loaded = True
            self._storage_serial = None
            return
        self._cache = {}
        data = await asyncio.to_thread(self._storage_path.read_text)
        if data.strip():
            try:
                raw = json.loads(data)
            except json.JSONDecodeError:
                self._cache = {}
            else:
                if isinstance(raw, dict):
                    self._cache = {
                        str(player_id): dict(record)
                        for player_id, record in raw.items()
                        if isinstance(record, dict)
                    }
        self._loaded = True
        self._storage_serial = current_serial

    async def _persist(self) -> None:
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(self._cache, indent=2, sort_keys=True)
        await asyncio.to_thread(self._storage_path.write_text, text)
        self._storage_serial = await self._current_storage_serial()
        self._loaded = True

    async def _current_storage_serial(self) -> Optional[tuple[int, int]]:
        if not self._storage_path.exists():
            return None
        stat_result = await asyncio.to_thread(self._storage_path.stat)
        mtime_ns = getattr(stat_result, "st_mtime_ns", None) or int(
            stat_result.st_mtime * 1_000_000_000
        )
        return (mtime_ns, stat_result.st_size)

    async def load(self, player_id: int | str) -> Optional[Dict[str, object]]:
        """Return a copy of the stored record, or ``None``."""

        async with self._lock:
            await self._ensure_loaded()
            raw = self._cache.get(str(player_id))
            return copy.deepcopy(raw) if raw is not None else None

    async def save(self, player_id: int | str, record: PlayerRecord) -> None:
        async with self._lock:
            await self._ensure_loaded()
            self._cache[str(player_id)] = copy.deepcopy(dict(record))
            await self._persist()

    async def delete(self, player_id: int | str) -> bool:
        async with self._lock:
            await self._ensure_loaded()
            removed = self._cache.pop(str(player_id), None)
            if removed is None:
                return False
            await self._persist()
            return True

    async def load_all(self) -> Dict[str, Dict[str, object]]:
        async with self._lock:
            await self._ensure_loaded()
            return copy.deepcopy(self._cache)

    async def count(self) -> int:
        async with self._lock:
            await self._ensure_loaded()
            return len(self._cache)

    async def load_or_create(self, player_id: int | str, username: str) -> Dict[str, object]:
        record = await self.load(player_id)
        if record is None:
            record = default_player_record(player_id, username)
            await self.save(player_id, record)
        return record
