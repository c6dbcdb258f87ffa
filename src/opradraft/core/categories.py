"""OPRA record-category taxonomy.

The taxonomy is configuration data shipped as ``data/opra_categories.json``.
It is parsed once per process and exposed as an immutable tuple of frozen
dataclasses, so the analyzer and composer never mutate shared state.
"""

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from pathlib import Path

from opradraft.core.errors import MalformedInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpraCategory:
    """One category of records obtainable under OPRA."""

    id: str
    name: str
    description: str
    required: bool = False
    default_records: tuple[str, ...] = ()

    def fallback_records(self) -> list[str]:
        """Static records list used when retrieval finds nothing for this category."""
        if self.default_records:
            return list(self.default_records)
        return [f"All records related to {self.name.lower()}"]


def _parse_categories(raw: str, source: str) -> tuple[OpraCategory, ...]:
    try:
        entries = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"Category file {source} is not valid JSON: {e}") from e

    if not isinstance(entries, list):
        raise MalformedInputError(f"Category file {source} must contain a JSON list")

    categories = []
    seen: set[str] = set()
    for entry in entries:
        try:
            category = OpraCategory(
                id=entry["id"],
                name=entry["name"],
                description=entry["description"],
                required=bool(entry.get("required", False)),
                default_records=tuple(entry.get("default_records", ())),
            )
        except (KeyError, TypeError) as e:
            raise MalformedInputError(f"Invalid category entry in {source}: {entry!r}") from e
        if category.id in seen:
            raise MalformedInputError(f"Duplicate category id {category.id!r} in {source}")
        seen.add(category.id)
        categories.append(category)

    return tuple(categories)


def load_categories(path: str | Path | None = None) -> tuple[OpraCategory, ...]:
    """Parse a taxonomy file. Defaults to the packaged taxonomy."""
    if path is None:
        raw = resources.files("opradraft.core").joinpath("data/opra_categories.json").read_text("utf-8")
        return _parse_categories(raw, "opra_categories.json")
    return _parse_categories(Path(path).read_text("utf-8"), str(path))


@lru_cache(maxsize=1)
def get_categories() -> tuple[OpraCategory, ...]:
    """The process-wide taxonomy, loaded on first use."""
    categories = load_categories()
    logger.debug("Loaded %d OPRA categories", len(categories))
    return categories


def get_category(category_id: str) -> OpraCategory | None:
    for category in get_categories():
        if category.id == category_id:
            return category
    return None


def required_category_ids(categories: tuple[OpraCategory, ...] | None = None) -> list[str]:
    return [c.id for c in (categories or get_categories()) if c.required]
