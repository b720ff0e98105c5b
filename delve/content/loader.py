"""Catalog loading helpers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Sequence

import yaml

from .models import DungeonDefinition, SchemaError
from .registry import DungeonRegistry

__all__ = ["CatalogLoadError", "DungeonCatalog"]

log = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".json", ".yaml", ".yml")
CATALOG_STEM = "dungeons"


class CatalogLoadError(RuntimeError):
    """Raised when the dungeon catalog could not be loaded from disk."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        if path is not None:
            message = f"{message} (source: {path})"
        super().__init__(message)
        self.path = path


@dataclass(frozen=True)
class DungeonCatalog:
    """Read-only collection of dungeon definitions loaded at start-up."""

    source: Path | None
    dungeons: DungeonRegistry

    @classmethod
    def from_definitions(cls, definitions: Iterable[Mapping[str, object]]) -> "DungeonCatalog":
        registry = DungeonRegistry()
        for raw in definitions:
            _register(registry, raw, path=None)
        return cls(source=None, dungeons=registry)

    @classmethod
    def load_from_path(cls, base_path: Path) -> "DungeonCatalog":
        """Load ``dungeons.json``/``dungeons.yaml`` from ``base_path``.

        ``base_path`` may also point directly at a catalog file.
        """

        file_path = _locate_catalog(base_path)
        if file_path is None:
            raise CatalogLoadError("No dungeon catalog found", path=base_path)
        payload = _read_payload(file_path)
        if isinstance(payload, Mapping):
            payload = payload.get("dungeons", ())
        if not isinstance(payload, Sequence) or isinstance(payload, (str, bytes)):
            raise CatalogLoadError("Catalog must contain a list of dungeons", path=file_path)
        registry = DungeonRegistry()
        for raw in payload:
            _register(registry, raw, path=file_path)
        return cls(source=file_path, dungeons=registry)

    @classmethod
    def load_or_empty(cls, base_path: Path) -> "DungeonCatalog":
        """Load the catalog, degrading to an empty one on failure."""

        try:
            catalog = cls.load_from_path(base_path)
        except CatalogLoadError as exc:
            log.warning("Failed to load dungeon catalog: %s", exc)
            return cls(source=None, dungeons=DungeonRegistry())
        log.info("Loaded %s dungeons from %s", len(catalog.dungeons), catalog.source)
        return catalog

    def __len__(self) -> int:
        return len(self.dungeons)


def _locate_catalog(base_path: Path) -> Path | None:
    if base_path.is_file():
        return base_path
    for extension in SUPPORTED_EXTENSIONS:
        candidate = base_path / f"{CATALOG_STEM}{extension}"
        if candidate.exists():
            return candidate
    return None


def _read_payload(file_path: Path) -> object:
    try:
        text = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CatalogLoadError(f"Unable to read catalog: {exc}", path=file_path) from exc
    try:
        if file_path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise CatalogLoadError(f"Invalid catalog syntax: {exc}", path=file_path) from exc


def _register(registry: DungeonRegistry, raw: object, *, path: Path | None) -> None:
    if not isinstance(raw, Mapping):
        raise CatalogLoadError("Dungeon entries must be mappings", path=path)
    try:
        dungeon = DungeonDefinition.from_mapping(raw)
        registry.register(dungeon.id, dungeon)
    except (SchemaError, TypeError, ValueError) as exc:
        raise CatalogLoadError(str(exc), path=path) from exc
