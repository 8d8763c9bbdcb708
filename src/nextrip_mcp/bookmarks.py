"""Saved stops, persisted as a small JSON key/value file."""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from .config import settings
from .models import StopData

logger = logging.getLogger(__name__)

SAVED_STOPS_KEY = "Saved stops"

_stop_list = TypeAdapter(list[StopData])


class BookmarkStore:
    """Key/value storage for bookmarked stops."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path else settings.bookmarks_path

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        return json.loads(self.path.read_text(encoding="utf-8"))

    def get(self, key: str) -> Any:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")

    def load(self) -> list[StopData]:
        """Return saved stops, initializing an empty list on first use."""
        saved = self.get(SAVED_STOPS_KEY)
        if saved is None:
            self.set(SAVED_STOPS_KEY, [])
            return []
        return _stop_list.validate_python(saved)

    def _save(self, stops: list[StopData]) -> None:
        self.set(SAVED_STOPS_KEY, _stop_list.dump_python(stops, mode="json"))

    def add(self, stops: list[StopData]) -> list[StopData]:
        saved = self.load()
        saved.extend(stops)
        self._save(saved)
        logger.info(f"Bookmarked {len(stops)} stop(s)")
        return saved

    def remove(self, stop_id: int) -> list[StopData]:
        saved = [stop for stop in self.load() if stop.stop_id != stop_id]
        self._save(saved)
        return saved
