"""Task template and shop item catalogs.

Seed files ship with the package and carry a version number. On bootstrap the
persisted catalog is replaced in one transaction when it is empty or its
stored version is older than the bundled one; otherwise it is left untouched.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from lumio.data.day_records import DayRecordStore
from lumio.data.db import ItemDB, TemplateDB
from lumio.data.models import Item, ItemType, TaskCategory, TaskTemplate

logger = logging.getLogger(__name__)

SEED_DIR = Path(__file__).resolve().parent.parent / "data" / "seeds"
TEMPLATE_SEED_PATH = SEED_DIR / "task_templates.json"
ITEM_SEED_PATH = SEED_DIR / "items.json"

_TEMPLATE_VERSION_KEY = "task_template_version"
_ITEM_VERSION_KEY = "item_version"


@dataclass(frozen=True)
class SeedBundle:
    version: int
    entries: tuple


def _read_json(path: Path) -> dict:
    try:
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Failed to load seed file %s: %s", path, exc)
        return {}
    return data if isinstance(data, dict) else {}


@lru_cache(maxsize=None)
def load_template_seeds(path: Path = TEMPLATE_SEED_PATH) -> SeedBundle:
    """Parse the template seed file: trimmed, deduplicated by title."""
    data = _read_json(path)
    templates: list[TaskTemplate] = []
    seen: set[str] = set()
    for raw in data.get("templates", []):
        title = str(raw.get("title", "")).strip()
        if not title or title in seen:
            continue
        try:
            category = TaskCategory(raw.get("category"))
        except ValueError:
            logger.warning("Unknown task category %r for '%s'", raw.get("category"), title)
            continue
        seen.add(title)
        templates.append(
            TaskTemplate(
                title=title,
                category=category,
                is_outdoor=bool(raw.get("is_outdoor", False)),
                energy_reward=max(1, int(raw.get("energy_reward", category.energy_reward))),
            )
        )
    version = int(data.get("version", 0))
    logger.info("Loaded %d task template(s) (version %d)", len(templates), version)
    return SeedBundle(version=version, entries=tuple(templates))


@lru_cache(maxsize=None)
def load_item_seeds(path: Path = ITEM_SEED_PATH) -> SeedBundle:
    data = _read_json(path)
    items: list[Item] = []
    for raw in data.get("items", []):
        try:
            items.append(
                Item(
                    sku=raw["sku"],
                    type=ItemType(raw["type"]),
                    cost_energy=int(raw["cost_energy"]),
                    bonding_boost=int(raw.get("bonding_boost", 0)),
                    asset_name=raw.get("asset_name", ""),
                )
            )
        except (KeyError, ValueError) as exc:
            logger.warning("Skipping malformed item seed %r: %s", raw, exc)
    return SeedBundle(version=int(data.get("version", 0)), entries=tuple(items))


def _stored_version(records: DayRecordStore, key: str) -> int | None:
    raw = records.get_meta(key)
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None


def _needs_reseed(has_rows: bool, stored: int | None, bundled: int) -> bool:
    return not has_rows or stored is None or stored < bundled


def ensure_task_templates(
    template_db: TemplateDB,
    records: DayRecordStore,
    seeds: SeedBundle | None = None,
) -> bool:
    """Reseed the template catalog when empty or stale. True if reseeded."""
    seeds = seeds or load_template_seeds()
    existing = template_db.list_all()
    stored = _stored_version(records, _TEMPLATE_VERSION_KEY)
    if not _needs_reseed(bool(existing), stored, seeds.version):
        return False
    if not seeds.entries:
        logger.warning("Template seeds are empty; keeping the current catalog")
        return False

    template_db.replace_all(seeds.entries)
    records.set_meta(_TEMPLATE_VERSION_KEY, str(seeds.version))
    logger.info("Task templates reseeded (version %s -> %d)", stored, seeds.version)
    return True


def ensure_items(
    item_db: ItemDB,
    records: DayRecordStore,
    seeds: SeedBundle | None = None,
) -> bool:
    """Reseed the shop catalog when empty or stale. True if reseeded."""
    seeds = seeds or load_item_seeds()
    existing = item_db.list_items()
    stored = _stored_version(records, _ITEM_VERSION_KEY)
    if not _needs_reseed(bool(existing), stored, seeds.version):
        return False
    if not seeds.entries:
        return False

    item_db.replace_items(seeds.entries)
    records.set_meta(_ITEM_VERSION_KEY, str(seeds.version))
    logger.info("Shop items reseeded (version %s -> %d)", stored, seeds.version)
    return True
