from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from . import config


class Category(str, Enum):
    WORD = "word"
    VERB = "verb"
    SENTENCE = "sentence"
    NUMBER = "number"

    @property
    def table(self) -> str:
        return _TABLES[self]

    @property
    def abbrev(self) -> str:
        return self.value[0]

    @property
    def seen_key(self) -> str:
        return _SEEN_KEYS[self]

    @property
    def user_key(self) -> str:
        return _USER_KEYS[self]

    @classmethod
    def parse(cls, value: "str | Category") -> "Category":
        """Accept ``word``, ``words`` or a Category; raise ValueError otherwise."""
        if isinstance(value, Category):
            return value
        cleaned = str(value).strip().lower()
        for category in cls:
            if cleaned in (category.value, category.table):
                return category
        raise ValueError(f"Unknown content category: {value!r}")


_TABLES = {
    Category.WORD: config.STORE_WORDS,
    Category.VERB: config.STORE_VERBS,
    Category.SENTENCE: config.STORE_SENTENCES,
    Category.NUMBER: config.STORE_NUMBERS,
}

_SEEN_KEYS = {
    Category.WORD: config.WORDS_SEEN_KEY,
    Category.VERB: config.VERBS_SEEN_KEY,
    Category.SENTENCE: config.SENTENCES_SEEN_KEY,
    Category.NUMBER: config.NUMBERS_SEEN_KEY,
}

_USER_KEYS = {
    Category.WORD: config.USER_WORDS_KEY,
    Category.VERB: config.USER_VERBS_KEY,
    Category.SENTENCE: config.USER_SENTENCES_KEY,
    Category.NUMBER: config.USER_NUMBERS_KEY,
}


class Origin(str, Enum):
    BUNDLED = "bundled"
    ADDITIONAL = "additional"
    USER = "user"

    @property
    def is_predefined(self) -> bool:
        return self is not Origin.USER


class ServiceMode(str, Enum):
    UNINITIALIZED = "uninitialized"
    NORMAL = "normal"
    FALLBACK = "fallback"


@dataclass
class ContentCache:
    """In-memory record sets, one per category; ``None`` means not loaded."""

    initialized: bool = False
    user_id: Optional[str] = None
    mode: ServiceMode = ServiceMode.UNINITIALIZED
    records: Dict[Category, Optional[List[Dict]]] = field(
        default_factory=lambda: {category: None for category in Category}
    )

    def get(self, category: Category) -> Optional[List[Dict]]:
        return self.records[category]

    def set(self, category: Category, items: List[Dict]) -> None:
        self.records[category] = items

    def count(self, category: Category) -> int:
        return len(self.records[category] or [])


@dataclass
class PurgeReport:
    table: str
    total: int = 0
    deleted: int = 0
    failed: int = 0
    deleted_ids: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, object]:
        return {
            "table": self.table,
            "total": self.total,
            "deleted": self.deleted,
            "failed": self.failed,
            "deletedIds": list(self.deleted_ids),
        }
