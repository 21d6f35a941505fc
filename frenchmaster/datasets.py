"""Bundled content, the embedded fallback set, and CSV/JSON loaders.

CSV rows carry no header. Alternative French answers are separated by ``|``:

    words / sentences / numbers:  english,french[|french...]
    verbs:                        infinitive,english,je,tu,il,nous,vous,ils
"""
from __future__ import annotations

import copy
import csv
import json
from dataclasses import dataclass, field
from io import StringIO
from pathlib import Path
from typing import Dict, List, Tuple, Union

from . import config
from .logging import get_logger
from .models import Category

LOG = get_logger("datasets")

DATA_DIR = Path(__file__).resolve().parent / "data"

Record = Dict[str, object]

FALLBACK_CONTENT: Dict[Category, List[Record]] = {
    Category.WORD: [
        {"id": "fallback-w1", "english": "hello", "french": ["bonjour"], "hint": "Greeting",
         "explanation": "Basic greeting in French"},
        {"id": "fallback-w2", "english": "thank you", "french": ["merci"], "hint": "Expressing gratitude",
         "explanation": "Basic way to say thanks"},
        {"id": "fallback-w3", "english": "yes", "french": ["oui"], "hint": "Affirmative",
         "explanation": "Basic affirmation"},
    ],
    Category.VERB: [],
    Category.SENTENCE: [
        {"id": "fallback-s1", "english": "How are you?", "french": ["Comment allez-vous?"],
         "explanation": "Formal way to ask how someone is doing"},
        {"id": "fallback-s2", "english": "I am fine", "french": ["Je vais bien"],
         "explanation": "Simple response to how are you"},
    ],
    Category.NUMBER: [
        {"id": "fallback-n1", "english": "1", "french": ["un"], "category": "number", "isPredefined": True},
        {"id": "fallback-n2", "english": "2", "french": ["deux"], "category": "number", "isPredefined": True},
    ],
}


def fallback_content() -> Dict[Category, List[Record]]:
    return copy.deepcopy(FALLBACK_CONTENT)


@dataclass
class BundledContent:
    """Static input datasets fed to the service at initialization."""

    bundled: Dict[Category, List[Record]] = field(default_factory=dict)
    additional: Dict[Category, List[Record]] = field(default_factory=dict)

    def bundled_for(self, category: Category) -> List[Record]:
        return list(self.bundled.get(category, []))

    def additional_for(self, category: Category) -> List[Record]:
        return list(self.additional.get(category, []))

    @classmethod
    def empty(cls) -> "BundledContent":
        return cls()


# CSV ------------------------------------------------------------------------


def parse_csv_content(text: str) -> List[List[str]]:
    reader = csv.reader(StringIO(text))
    rows: List[List[str]] = []
    for row in reader:
        if not row or not any(cell.strip() for cell in row):
            continue
        rows.append([cell.strip() for cell in row])
    return rows


def _split_forms(value: str) -> List[str]:
    return [part.strip() for part in value.split("|") if part.strip()]


def build_translation_records(rows: List[List[str]], category: Category) -> Tuple[List[Record], List[str]]:
    records: List[Record] = []
    errors: List[str] = []
    for idx, row in enumerate(rows, start=1):
        if len(row) < 2:
            errors.append(f"Row {idx}: expected at least 2 columns.")
            continue
        english, french = row[0], _split_forms(row[1])
        if not english or not french:
            errors.append(f"Row {idx}: empty value.")
            continue
        record: Record = {"english": english, "french": french}
        if category is Category.NUMBER:
            record["category"] = "number"
        records.append(record)
    return records, errors


def build_verb_records(rows: List[List[str]]) -> Tuple[List[Record], List[str]]:
    records: List[Record] = []
    errors: List[str] = []
    width = 2 + len(config.VERB_SUBJECTS)
    for idx, row in enumerate(rows, start=1):
        if len(row) < width:
            errors.append(f"Row {idx}: expected {width} columns.")
            continue
        infinitive, english = row[0], row[1]
        if not infinitive or not english:
            errors.append(f"Row {idx}: missing infinitive or translation.")
            continue
        conjugations = {
            subject: _split_forms(value) or [""]
            for subject, value in zip(config.VERB_SUBJECTS, row[2:width])
        }
        records.append(
            {
                "infinitive": infinitive,
                "english": english if english.startswith("to ") else f"to {english}",
                "tense": "present",
                "conjugations": conjugations,
            }
        )
    return records, errors


def import_csv_text(category: Union[str, Category], content: str) -> Tuple[List[Record], List[str]]:
    category = Category.parse(category)
    rows = parse_csv_content(content)
    if category is Category.VERB:
        return build_verb_records(rows)
    return build_translation_records(rows, category)


def load_csv_file(path: Union[str, Path], category: Union[str, Category]) -> List[Record]:
    path = Path(path)
    if not path.exists():
        LOG.warning(f"Content file {path} not found; skipping")
        return []
    with path.open("r", encoding="utf-8", newline="") as handle:
        records, errors = import_csv_text(category, handle.read())
    for error in errors:
        LOG.warning(f"{path.name}: {error}")
    return records


def load_content_file(path: Union[str, Path]) -> BundledContent:
    """Read ``{"bundled": {"words": [...]}, "additional": {...}}`` from JSON."""
    with Path(path).open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    content = BundledContent()
    for tier in ("bundled", "additional"):
        target = getattr(content, tier)
        for name, items in (data.get(tier) or {}).items():
            target[Category.parse(name)] = [item for item in items if isinstance(item, dict)]
    return content


def load_default_content(data_dir: Path = DATA_DIR) -> BundledContent:
    """Content shipped with the application: additional words, sentences, numbers.

    Verbs are not shipped; predefined verbs are retired.
    """
    return BundledContent(
        additional={
            Category.WORD: load_csv_file(data_dir / "words.csv", Category.WORD),
            Category.SENTENCE: load_csv_file(data_dir / "sentences.csv", Category.SENTENCE),
            Category.NUMBER: load_csv_file(data_dir / "numbers.csv", Category.NUMBER),
        }
    )
