"""Least-recently-seen item selection backed by per-user exposure logs."""
from __future__ import annotations

import random
import time
from typing import TYPE_CHECKING, Callable, Dict, Optional

from . import config
from .kvstore import KeyValueStore, read_json, write_json
from .logging import get_logger
from .models import Category

if TYPE_CHECKING:
    from .data_service import FrenchDataService

LOG = get_logger("selection")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _age(value: object) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    return 0


class ExposureTracker:
    """Pick unseen items first, otherwise the one seen longest ago.

    The exposure log lives in the key/value store under
    ``<category seen key>-<user id>`` as ``{item id: epoch millis}``.
    """

    def __init__(
        self,
        service: "FrenchDataService",
        kv: KeyValueStore,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.service = service
        self.kv = kv
        self.rng = rng or random.Random()
        self.clock = clock

    @staticmethod
    def seen_key(category: Category, user_id: str) -> str:
        return f"{category.seen_key}-{user_id}"

    def load_seen(self, category: "str | Category", user_id: str = config.GUEST_USER_ID) -> Dict[str, object]:
        category = Category.parse(category)
        return read_json(self.kv, self.seen_key(category, user_id), {}, dict)

    async def get_next_item(self, category: "str | Category", user_id: str = config.GUEST_USER_ID):
        category = Category.parse(category)
        try:
            items = await self.service.get_all(category)
            if category is Category.WORD:
                items = [item for item in items if item.get("category") != "number"]
            if not items:
                LOG.warning(f"No {category.table} available")
                return None
            seen = self.load_seen(category, user_id)
            unseen = [item for item in items if not seen.get(str(item.get("id")))]
            if unseen:
                return self.rng.choice(unseen)
            return min(items, key=lambda item: _age(seen.get(str(item.get("id")))))
        except Exception:
            LOG.exception(f"Error selecting next {category.value}")
            items = self.service.get_cached(category)
            return self.rng.choice(items) if items else None

    def mark_item_as_seen(
        self, category: "str | Category", item_id: Optional[str], user_id: str = config.GUEST_USER_ID
    ) -> bool:
        category = Category.parse(category)
        if not item_id:
            LOG.warning(f"Cannot mark {category.value} as seen: missing id")
            return False
        key = self.seen_key(category, user_id)
        seen = read_json(self.kv, key, {}, dict)
        seen[str(item_id)] = self.clock()
        try:
            write_json(self.kv, key, seen)
        except OSError as exc:
            LOG.error(f"Error saving seen {category.table}: {exc}")
            return False
        return True
