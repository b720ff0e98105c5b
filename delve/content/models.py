"""Schema models for dungeon catalog content."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, MutableMapping, Optional, Sequence

__all__ = [
    "DungeonDefinition",
    "FloorTemplate",
    "LootEntry",
    "RelicDrop",
    "SchemaError",
]


class SchemaError(ValueError):
    """Raised when catalog data fails validation."""


def _coerce_mapping(name: str, value: object) -> MutableMapping[str, object]:
    if isinstance(value, MutableMapping):
        return value
    if isinstance(value, Mapping):
        return dict(value)
    raise SchemaError(f"{name} must be a mapping")


def _coerce_sequence(name: str, value: object) -> Sequence[object]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return value
    raise SchemaError(f"{name} must be a sequence")


def _optional_number(name: str, value: object) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise SchemaError(f"{name} must be a number")
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"{name} must be a number") from exc


@dataclass(frozen=True)
class LootEntry:
    """A single weighted drop on a floor or boss loot table.

    ``chance`` is ``None`` when the catalog leaves it out; callers pick the
    default that fits their roll (treasure and boss rolls differ).
    """

    item: str
    chance: Optional[float] = None
    min: int = 1
    max: int = 1

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "LootEntry":
        mapping = _coerce_mapping("loot entry", data)
        item = mapping.get("item")
        if not item:
            raise SchemaError("loot entry requires an item")
        minimum = int(mapping.get("min", 1) or 1)
        maximum = int(mapping.get("max", minimum) or minimum)
        if maximum < minimum:
            raise SchemaError(f"loot entry '{item}' has max below min")
        return cls(
            item=str(item),
            chance=_optional_number("chance", mapping.get("chance")),
            min=minimum,
            max=maximum,
        )

    def chance_or(self, default: float) -> float:
        return self.chance if self.chance is not None else default


@dataclass(frozen=True)
class RelicDrop:
    item: str
    chance: float = 0.5
    amount: int = 1

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "RelicDrop":
        mapping = _coerce_mapping("relic", data)
        item = mapping.get("item")
        if not item:
            raise SchemaError("relic requires an item")
        chance = _optional_number("relic chance", mapping.get("chance"))
        return cls(
            item=str(item),
            chance=0.5 if chance is None else chance,
            amount=int(mapping.get("amount", 1) or 1),
        )


_FLOOR_STAT_KEYS = {
    "base_hp": "baseHp",
    "hp_per_level": "hpPerLevel",
    "base_damage": "baseDamage",
    "damage_per_level": "damagePerLevel",
    "base_xp": "baseXp",
    "xp_per_level": "xpPerLevel",
    "base_coins": "baseCoins",
    "coins_per_level": "coinsPerLevel",
}


@dataclass(frozen=True)
class FloorTemplate:
    """Enemy template for one floor of a dungeon.

    Stat fields are left as ``None`` when the catalog omits them. Regular
    enemies and bosses fall back to different defaults, so the defaults are
    applied where the template is consumed.
    """

    name: str
    emoji: str | None = None
    description: str | None = None
    base_hp: Optional[float] = None
    hp_per_level: Optional[float] = None
    base_damage: Optional[float] = None
    damage_per_level: Optional[float] = None
    base_xp: Optional[float] = None
    xp_per_level: Optional[float] = None
    base_coins: Optional[float] = None
    coins_per_level: Optional[float] = None
    loot: Sequence[LootEntry] = field(default_factory=tuple)
    boss: bool = False
    relic: RelicDrop | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "FloorTemplate":
        mapping = _coerce_mapping("floor", data)
        stats: dict[str, Optional[float]] = {}
        for attribute, key in _FLOOR_STAT_KEYS.items():
            raw = mapping.get(key, mapping.get(attribute))
            stats[attribute] = _optional_number(key, raw)
        loot_raw = mapping.get("loot", ())
        loot: tuple[LootEntry, ...] = ()
        if loot_raw:
            loot = tuple(
                LootEntry.from_mapping(_coerce_mapping("loot entry", entry))
                for entry in _coerce_sequence("loot", loot_raw)
            )
        relic_raw = mapping.get("relic")
        relic = RelicDrop.from_mapping(relic_raw) if relic_raw else None
        emoji = mapping.get("emoji")
        description = mapping.get("description")
        return cls(
            name=str(mapping.get("name") or "Dungeon Guardian"),
            emoji=str(emoji) if emoji else None,
            description=str(description) if description else None,
            loot=loot,
            boss=bool(mapping.get("boss", False)),
            relic=relic,
            **stats,
        )


@dataclass(frozen=True)
class DungeonDefinition:
    """Static definition of an enqueueable dungeon."""

    id: str
    name: str
    theme: str
    biome: str | None
    min_level: int
    environment: str | None = None
    description: str | None = None
    floors: Sequence[FloorTemplate] = field(default_factory=tuple)

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "DungeonDefinition":
        mapping = _coerce_mapping("dungeon", data)
        identifier = mapping.get("id")
        if not identifier:
            raise SchemaError("dungeon requires an id")
        floors_raw = mapping.get("floors", ())
        floors: tuple[FloorTemplate, ...] = ()
        if floors_raw:
            floors = tuple(
                FloorTemplate.from_mapping(_coerce_mapping("floor", floor))
                for floor in _coerce_sequence("floors", floors_raw)
            )
        biome = mapping.get("biome")
        environment = mapping.get("environment")
        description = mapping.get("description")
        return cls(
            id=str(identifier).lower(),
            name=str(mapping.get("name") or identifier),
            theme=str(mapping.get("theme") or "unknown").lower(),
            biome=str(biome) if biome else None,
            min_level=int(mapping.get("minLevel", mapping.get("min_level", 1)) or 1),
            environment=str(environment) if environment else None,
            description=str(description) if description else None,
            floors=floors,
        )

    @property
    def regular_floors(self) -> tuple[FloorTemplate, ...]:
        return tuple(floor for floor in self.floors if not floor.boss)

    @property
    def boss_floor(self) -> FloorTemplate | None:
        """Return the floor flagged as boss, else the last floor."""

        for floor in self.floors:
            if floor.boss:
                return floor
        return self.floors[-1] if self.floors else None

    def loot_tables(self) -> tuple[LootEntry, ...]:
        """All loot entries across every floor, in catalog order."""

        entries: list[LootEntry] = []
        for floor in self.floors:
            entries.extend(floor.loot)
        return tuple(entries)
