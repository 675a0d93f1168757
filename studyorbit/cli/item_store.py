"""
Item persistence used by the command line.

The scheduling engine never loads or saves anything itself; it only needs an
ItemStore. The CLI ships a JSON file implementation: a list of item objects,
or an object with an "items" list (other top-level keys are preserved).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

from loguru import logger

from studyorbit.core.models import ReviewableItem


class ItemStoreError(Exception):
    """Raised when an item file cannot be read or written."""


class ItemStore(Protocol):
    """Anything that can supply and persist a collection of items."""

    def load(self) -> list[ReviewableItem]: ...

    def save(self, items: list[ReviewableItem]) -> None: ...


class JsonItemStore:
    """ItemStore backed by a UTF-8 JSON file."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._envelope: dict[str, Any] | None = None

    def load(self) -> list[ReviewableItem]:
        if not self.path.exists():
            raise ItemStoreError(f"File not found: {self.path}")

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ItemStoreError(f"Cannot read {self.path}: {e}") from e

        if isinstance(raw, dict):
            records = raw.get("items")
            self._envelope = {k: v for k, v in raw.items() if k != "items"}
        else:
            records = raw
            self._envelope = None

        if not isinstance(records, list):
            raise ItemStoreError(f"{self.path} does not contain an item list")

        items: list[ReviewableItem] = []
        for record in records:
            item = ReviewableItem.coerce(record)
            if item is None:
                logger.warning("Skipping unreadable record in {}", self.path)
                continue
            items.append(item)

        logger.debug("Loaded {} items from {}", len(items), self.path)
        return items

    def group_contexts(self) -> dict[str, dict[str, Any]]:
        """Lesson/card records stored under "groups" next to the items."""
        groups = (self._envelope or {}).get("groups")
        if not isinstance(groups, dict):
            return {}
        return {str(k): v for k, v in groups.items() if isinstance(v, dict)}

    def save(self, items: list[ReviewableItem]) -> None:
        records = [item.to_record() for item in items]
        data: Any = records if self._envelope is None else {**self._envelope, "items": records}

        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp_path.write_text(
                json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8"
            )
            tmp_path.replace(self.path)
        except OSError as e:
            raise ItemStoreError(f"Cannot write {self.path}: {e}") from e

        logger.debug("Saved {} items to {}", len(items), self.path)
