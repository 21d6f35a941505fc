"""Merging, validation and provenance of content records.

Everything here is pure: functions copy their inputs and never touch the
store or the cache.
"""
from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from . import config
from .errors import ValidationFailure
from .logging import get_logger
from .models import Category, Origin

LOG = get_logger("content")

Record = Dict[str, object]

_LEGACY_ID = re.compile(r"^(word|verb|sentence|number)-\d+$")


def _non_empty_text(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _non_empty_forms(value: object) -> bool:
    if not isinstance(value, (list, tuple)) or not value:
        return False
    return _non_empty_text(value[0]) and all(isinstance(item, str) for item in value)


def _has_conjugations(value: object) -> bool:
    return isinstance(value, dict) and bool(value)


@dataclass(frozen=True)
class ValidationPolicy:
    required: Tuple[str, ...]
    checks: Tuple[Tuple[str, Callable[[object], bool]], ...]

    def problems(self, record: Record) -> List[str]:
        issues = [f"missing {name}" for name in self.required if not record.get(name)]
        for name, check in self.checks:
            if record.get(name) and not check(record.get(name)):
                issues.append(f"invalid {name}")
        return issues


VALIDATION_POLICIES: Dict[Category, ValidationPolicy] = {
    Category.WORD: ValidationPolicy(
        required=("english", "french"),
        checks=(("english", _non_empty_text), ("french", _non_empty_forms)),
    ),
    Category.NUMBER: ValidationPolicy(
        required=("english", "french"),
        checks=(("english", _non_empty_text), ("french", _non_empty_forms)),
    ),
    Category.VERB: ValidationPolicy(
        required=("infinitive", "english", "conjugations"),
        checks=(
            ("infinitive", _non_empty_text),
            ("english", _non_empty_text),
            ("conjugations", _has_conjugations),
        ),
    ),
    Category.SENTENCE: ValidationPolicy(
        required=("english", "french"),
        checks=(("english", _non_empty_text), ("french", _non_empty_forms)),
    ),
}


def normalize_french(record: Record) -> Record:
    """Coerce a bare-string ``french`` value into a one-element list."""
    french = record.get("french")
    if isinstance(french, str):
        record["french"] = [french]
    elif isinstance(french, tuple):
        record["french"] = list(french)
    return record


def normalize_conjugations(record: Record) -> Record:
    """Make every subject pronoun map to a non-empty list of forms."""
    conjugations = record.get("conjugations")
    if not isinstance(conjugations, dict):
        return record
    fixed = dict(conjugations)
    for subject in config.VERB_SUBJECTS:
        value = fixed.get(subject)
        if not value:
            fixed[subject] = [""]
        elif not isinstance(value, list):
            fixed[subject] = list(value) if isinstance(value, tuple) else [value]
    record["conjugations"] = fixed
    return record


def normalize_record(category: Category, record: Record) -> Record:
    if category is Category.VERB:
        return normalize_conjugations(record)
    return normalize_french(record)


def validate_record(category: Category, record: Record) -> Record:
    """Raise ValidationFailure when ``record`` misses a required field."""
    if not isinstance(record, dict):
        raise ValidationFailure(f"{category.value}: record is not a mapping")
    problems = VALIDATION_POLICIES[category].problems(record)
    if problems:
        raise ValidationFailure(f"{category.value} {record.get('id')!r}: {', '.join(problems)}")
    return record


def is_valid(category: Category, record: Record) -> bool:
    try:
        validate_record(category, record)
    except ValidationFailure as exc:
        LOG.debug(f"Dropping invalid record: {exc}")
        return False
    return True


# provenance -------------------------------------------------------------------


def record_origin(record: Record) -> Optional[Origin]:
    """Explicit ``origin`` first; legacy flag and id prefixes second."""
    raw = record.get("origin")
    if raw:
        try:
            return Origin(raw)
        except ValueError:
            LOG.warning(f"Unknown origin {raw!r} on record {record.get('id')!r}")
    if record.get("isPredefined") is True:
        return Origin.ADDITIONAL
    record_id = record.get("id")
    if isinstance(record_id, str) and (
        _LEGACY_ID.match(record_id) or record_id.startswith("fallback-")
    ):
        return Origin.ADDITIONAL
    if record.get("isPredefined") is False or (isinstance(record_id, str) and record_id.startswith("user-")):
        return Origin.USER
    return None


def is_predefined(record: Record) -> bool:
    if record.get("isPredefined") is True:
        return True
    origin = record_origin(record)
    return origin is not None and origin.is_predefined


def matches_legacy_prefix(record: Record, prefixes: Sequence[str] = config.LEGACY_PREDEFINED_PREFIXES) -> bool:
    record_id = record.get("id")
    return isinstance(record_id, str) and record_id.startswith(tuple(prefixes))


def tag_origin(record: Record, origin: Origin) -> Record:
    """Stamp provenance on a copy unless the record already carries one."""
    tagged = dict(record)
    tagged.setdefault("origin", origin.value)
    tagged.setdefault("isPredefined", origin.is_predefined)
    return tagged


def migrate_origin(record: Record) -> Record:
    """Fill in ``origin`` for records persisted before the field existed."""
    if record.get("origin"):
        return record
    origin = record_origin(record) or Origin.USER
    migrated = dict(record)
    migrated["origin"] = origin.value
    migrated["isPredefined"] = origin.is_predefined
    return migrated


# merge ----------------------------------------------------------------------


def combine_and_validate(records: Sequence[Record], category: Category) -> List[Record]:
    """Assign missing ids by position, drop invalid and duplicate records.

    Generated ids depend on the position in ``records``; callers must keep the
    concatenation order (bundled, additional, user) stable across runs.
    """
    category = Category.parse(category)
    result: List[Record] = []
    seen_ids = set()
    dropped_invalid = 0
    dropped_duplicate = 0
    for index, raw in enumerate(records):
        if not isinstance(raw, dict):
            dropped_invalid += 1
            continue
        item = normalize_record(category, copy.deepcopy(raw))
        if not item.get("id"):
            item["id"] = f"{category.value}-{index}"
        if not is_valid(category, item):
            dropped_invalid += 1
            continue
        if item["id"] in seen_ids:
            dropped_duplicate += 1
            LOG.info(f"Skipping duplicate {category.value} id {item['id']!r}")
            continue
        seen_ids.add(item["id"])
        result.append(item)
    if dropped_invalid or dropped_duplicate:
        LOG.info(
            f"{category.value} validation: {len(records)} before, {len(result)} after "
            f"({dropped_invalid} invalid, {dropped_duplicate} duplicate)"
        )
    return result


def merge_sources(
    category: Category,
    bundled: Iterable[Record] = (),
    additional: Iterable[Record] = (),
    user: Iterable[Record] = (),
) -> List[Record]:
    """Tag each provenance tier and merge them in a fixed order."""
    combined = (
        [tag_origin(item, Origin.BUNDLED) for item in bundled if isinstance(item, dict)]
        + [tag_origin(item, Origin.ADDITIONAL) for item in additional if isinstance(item, dict)]
        + [tag_origin(item, Origin.USER) for item in user if isinstance(item, dict)]
    )
    return combine_and_validate(combined, category)


def prepare_additional_numbers(numbers: Iterable[Record]) -> List[Record]:
    prepared = []
    for index, number in enumerate(numbers):
        item = dict(number)
        item["id"] = item.get("id") or f"number-{index}"
        item["isPredefined"] = True
        item["category"] = "number"
        item["origin"] = Origin.ADDITIONAL.value
        prepared.append(item)
    return prepared


# duplicates -------------------------------------------------------------------


def _french_key(record: Record) -> Optional[str]:
    french = record.get("french")
    if isinstance(french, (list, tuple)):
        key = "|".join(sorted(str(item) for item in french)).lower()
    elif isinstance(french, str):
        key = french.lower()
    else:
        return None
    return key if key.strip() else None


def _english_key(record: Record) -> Optional[str]:
    english = record.get("english")
    if isinstance(english, str) and english.strip():
        return english.lower()
    return None


def find_duplicates(
    records: Sequence[Record],
    check_french: bool = True,
    check_english: bool = True,
) -> List[Dict[str, object]]:
    """Group records sharing French (first) or English text.

    An item lands in at most one group; groups smaller than two are dropped.
    """
    keyed: List[Tuple[str, Callable[[Record], Optional[str]]]] = []
    if check_french:
        keyed.append(("french", _french_key))
    if check_english:
        keyed.append(("english", _english_key))

    groups: List[Dict[str, object]] = []
    processed = set()
    for match_type, key_of in keyed:
        buckets: Dict[str, List[Record]] = {}
        for record in records:
            if not isinstance(record, dict):
                continue
            key = key_of(record)
            if key is not None:
                buckets.setdefault(key, []).append(record)
        for key, bucket in buckets.items():
            fresh = [record for record in bucket if id(record) not in processed]
            if len(fresh) < 2:
                continue
            processed.update(id(record) for record in fresh)
            groups.append({"matchType": match_type, "key": key, "items": fresh})
    return groups
