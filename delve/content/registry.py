"""Registries for dungeon catalog content."""

from __future__ import annotations

from typing import Dict, Generic, Iterable, Iterator, Optional, Sequence, TypeVar

from .models import DungeonDefinition

__all__ = ["BaseRegistry", "DungeonRegistry"]

T = TypeVar("T")


class BaseRegistry(Generic[T]):
    """Utility container for validated content entries."""

    def __init__(self) -> None:
        self._entries: Dict[str, T] = {}
        self._aliases: Dict[str, str] = {}

    @staticmethod
    def _normalise(value: str) -> str:
        return value.strip().lower()

    def register(self, key: str, entry: T, *, aliases: Iterable[str] = ()) -> None:
        identifier = self._normalise(key)
        if identifier in self._entries:
            raise ValueError(f"Duplicate entry '{key}'")
        self._entries[identifier] = entry
        self._aliases[identifier] = identifier
        for alias in aliases:
            normalised = self._normalise(alias)
            self._aliases.setdefault(normalised, identifier)

    def get(self, name: str) -> T:
        if not name:
            raise KeyError("Name must be provided")
        identifier = self._normalise(name)
        target = self._aliases.get(identifier, identifier)
        try:
            return self._entries[target]
        except KeyError as exc:
            raise KeyError(f"Unknown entry '{name}'") from exc

    def values(self) -> Sequence[T]:
        return tuple(self._entries.values())

    def keys(self) -> Sequence[str]:
        return tuple(self._entries.keys())

    def __iter__(self) -> Iterator[T]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


class DungeonRegistry(BaseRegistry[DungeonDefinition]):
    """Registry of dungeons addressable by id or display name."""

    def register(self, key: str, entry: DungeonDefinition, *, aliases: Iterable[str] = ()) -> None:  # type: ignore[override]
        alias_set = list(aliases)
        alias_set.append(entry.name)
        super().register(key, entry, aliases=alias_set)

    def best_for_level(self, level: int) -> Optional[DungeonDefinition]:
        """Return the highest-minimum-level dungeon ``level`` qualifies for."""

        best: Optional[DungeonDefinition] = None
        for dungeon in self._entries.values():
            if dungeon.min_level > level:
                continue
            if best is None or dungeon.min_level > best.min_level:
                best = dungeon
        return best

    def resolve(self, selector: str | None, level: int) -> DungeonDefinition:
        """Resolve ``selector`` by id or name, else pick by ``level``.

        Raises :class:`KeyError` when nothing matches.
        """

        if selector and selector.strip():
            return self.get(selector)
        dungeon = self.best_for_level(level)
        if dungeon is None:
            raise KeyError(f"No dungeon is available for level {level}")
        return dungeon
