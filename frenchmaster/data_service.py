"""Cache and lifecycle manager for all French content.

``FrenchDataService`` is the error boundary of the package: store and merge
failures are logged and turned into ``False`` / ``None`` / empty results, so
callers never see an exception from a public method.
"""
from __future__ import annotations

import asyncio
import copy
import time
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from . import config
from .content import (
    combine_and_validate,
    find_duplicates,
    is_predefined,
    is_valid,
    matches_legacy_prefix,
    merge_sources,
    migrate_origin,
    normalize_record,
    prepare_additional_numbers,
    record_origin,
    validate_record,
)
from .datasets import BundledContent, fallback_content, load_default_content
from .errors import DuplicateKey, NotFound, StorageUnavailable, ValidationFailure
from .kvstore import JsonFileKeyValueStore, KeyValueStore, MemoryKeyValueStore, read_json, write_json
from .logging import get_logger
from .maintenance import predefined_predicate, purge_records
from .models import Category, ContentCache, Origin, PurgeReport, ServiceMode
from .selection import ExposureTracker
from .store import ContentStore

LOG = get_logger("data-service")

Record = Dict[str, object]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FrenchDataService:
    """Owns the content cache and keeps it in step with the persistent store."""

    def __init__(
        self,
        store: Optional[ContentStore] = None,
        kv: Optional[KeyValueStore] = None,
        content: Optional[BundledContent] = None,
        retired_categories: Iterable[str] = config.RETIRED_PREDEFINED_CATEGORIES,
        tracker: Optional[ExposureTracker] = None,
    ) -> None:
        self.store = store
        self.kv = kv if kv is not None else MemoryKeyValueStore()
        self.content = content if content is not None else BundledContent.empty()
        self.retired: Set[Category] = {Category.parse(name) for name in retired_categories}
        self.cache = ContentCache()
        self.tracker = tracker or ExposureTracker(self, self.kv)
        self._init_task: Optional[asyncio.Task] = None
        self._init_user: Optional[str] = None

    @classmethod
    def from_config(cls) -> "FrenchDataService":
        return cls(
            store=ContentStore(config.DB_PATH),
            kv=JsonFileKeyValueStore(config.KV_PATH),
            content=load_default_content(),
        )

    @property
    def store_available(self) -> bool:
        return self.store is not None and self.store.is_initialized

    @property
    def is_fallback(self) -> bool:
        return self.cache.mode is ServiceMode.FALLBACK

    # lifecycle ----------------------------------------------------------------

    async def initialize(self, user_id: Optional[str] = None) -> None:
        if self.cache.initialized and self.cache.user_id == user_id:
            LOG.debug(f"Already initialized with userId {user_id}")
            return
        task = self._init_task
        if task is None or task.done() or self._init_user != user_id:
            task = self._start_initialization(user_id)
        await asyncio.shield(task)

    def _start_initialization(self, user_id: Optional[str]) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        self._init_user = user_id
        self._init_task = loop.create_task(self._run_initialize(user_id))
        return self._init_task

    async def wait_until_ready(self) -> None:
        task = self._init_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    async def _ensure_initialized(self) -> None:
        if not self.cache.initialized:
            await self.initialize(self.cache.user_id)

    async def _run_initialize(self, user_id: Optional[str]) -> None:
        LOG.info(f"Initializing with userId {user_id}")
        self.cache.initialized = False
        self.cache.user_id = user_id
        try:
            if self.store is None:
                raise StorageUnavailable("No persistent store configured")
            await self.store.initialize()
            await self._load_all_content()
        except StorageUnavailable as exc:
            LOG.error(f"Persistent store unavailable: {exc}")
            self._load_fallback_content()
            return
        except Exception:
            LOG.exception("Failed to initialize content")
            self._load_fallback_content()
            return
        self.cache.mode = ServiceMode.NORMAL
        self.cache.initialized = True
        LOG.info(f"Successfully initialized: {self._counts_line()}")

    def force_refresh(self) -> Dict[str, object]:
        """Start a new initialization pass and return without waiting for it."""
        LOG.info("Force refreshing data...")
        self.cache.initialized = False
        user_id = self.cache.user_id
        try:
            self._start_initialization(user_id)
        except RuntimeError:
            LOG.warning("No running event loop; content reloads on next access")
        return {"message": "Data refresh initiated", "userId": user_id}

    def _counts_line(self) -> str:
        return ", ".join(f"{category.table}: {self.cache.count(category)}" for category in Category)

    # loading ------------------------------------------------------------------

    async def _load_all_content(self) -> None:
        for category in Category:
            self.cache.set(category, await self._load_category(category))

    async def _load_category(self, category: Category) -> List[Record]:
        table = category.table
        user = await self._get_user_content(category)
        if category in self.retired:
            LOG.info(f"Skipping predefined {table}: category retired")
            bundled: List[Record] = []
            additional: List[Record] = []
        else:
            bundled = self.content.bundled_for(category)
            additional = self.content.additional_for(category)
            if category is Category.NUMBER:
                additional = prepare_additional_numbers(additional)
        merged = merge_sources(category, bundled, additional, user)
        if not self.store_available:
            return merged

        if not await self._is_seeded(table):
            predefined = [record for record in merged if is_predefined(record)]
            if predefined:
                LOG.info(f"Seeding {len(predefined)} predefined {table} into the store")
                await self.store.bulk_add_data(table, predefined)
            await self._mark_seeded(table)
            return merged

        stored_ids = {str(record.get("id")) for record in await self.store.get_all_data(table)}
        kept = [record for record in merged if not is_predefined(record) or record["id"] in stored_ids]
        if len(kept) != len(merged):
            LOG.info(f"Leaving out {len(merged) - len(kept)} purged predefined {table}")
        return kept

    async def _is_seeded(self, table: str) -> bool:
        marker = await self.store.get_by_id(config.STORE_USER_DATA, f"seeded:{table}")
        return marker is not None

    async def _mark_seeded(self, table: str) -> None:
        await self.store.update_data(
            config.STORE_USER_DATA,
            {"id": f"seeded:{table}", "table": table, "seededAt": now_iso()},
        )

    async def _get_user_content(self, category: Category) -> List[Record]:
        """User-origin records; predefined-looking rows are filtered out."""
        table = category.table
        if self.store_available:
            try:
                stored = await self.store.get_all_data(table)
                data = stored + await self._sync_mirror_extras(category, stored)
            except Exception as exc:
                LOG.error(f"Failed to load user {table} from store, using mirror: {exc}")
                data = self._read_user_mirror(category)
        else:
            data = self._read_user_mirror(category)
        records = [migrate_origin(record) for record in data if isinstance(record, dict)]
        user = [record for record in records if not is_predefined(record)]
        if len(user) != len(records):
            LOG.debug(f"Filtered {len(records) - len(user)} predefined {table} from user content")
        return user

    async def _sync_mirror_extras(self, category: Category, stored: List[Record]) -> List[Record]:
        """Push user records that only reached the key/value mirror into the store."""
        stored_ids = {str(record.get("id")) for record in stored}
        extras = [
            record
            for record in self._read_user_mirror(category)
            if record.get("id") and str(record["id"]) not in stored_ids and not is_predefined(record)
        ]
        if extras:
            LOG.info(f"Syncing {len(extras)} {category.table} from the key/value mirror into the store")
            await self.store.bulk_add_data(category.table, extras)
        return extras

    def _load_fallback_content(self) -> None:
        LOG.warning("Loading fallback content")
        fallback = fallback_content()
        for category in Category:
            user = [record for record in self._read_user_mirror(category) if not is_predefined(record)]
            self.cache.set(category, merge_sources(category, bundled=fallback[category], user=user))
        self.cache.mode = ServiceMode.FALLBACK
        self.cache.initialized = True

    async def _reload_content(self) -> None:
        if self.is_fallback or not self.store_available:
            self._load_fallback_content()
            return
        try:
            await self._load_all_content()
        except Exception:
            LOG.exception("Critical error reloading content")
            self._load_fallback_content()

    # key/value mirror ---------------------------------------------------------

    def _read_user_mirror(self, category: Category) -> List[Record]:
        items = read_json(self.kv, category.user_key, [], list)
        return [item for item in items if isinstance(item, dict)]

    def _write_user_mirror(self, category: Category, records: List[Record]) -> None:
        write_json(self.kv, category.user_key, records)

    def _mirror_user_content(self, category: Category) -> None:
        user = [record for record in self.cache.get(category) or [] if not is_predefined(record)]
        try:
            self._write_user_mirror(category, user)
        except OSError as exc:
            LOG.error(f"Error updating key/value mirror for {category.table}: {exc}")

    def _add_to_mirror(self, category: Category, item: Record) -> bool:
        try:
            existing = self._read_user_mirror(category)
            if any(record.get("id") == item["id"] for record in existing):
                LOG.error(f"{category.table}: id {item['id']!r} already in key/value mirror")
                return False
            existing.append(item)
            self._write_user_mirror(category, existing)
        except OSError as exc:
            LOG.error(f"Key/value fallback also failed: {exc}")
            return False
        self._cache_upsert(category, item)
        LOG.info(f"{category.value} {item['id']} saved to key/value fallback")
        return True

    def _update_mirror(self, category: Category, item: Record) -> bool:
        try:
            if is_predefined(item):
                raise NotFound(f"{category.table}: predefined {item['id']!r} has no stored copy")
            existing = [record for record in self._read_user_mirror(category) if record.get("id") != item["id"]]
            existing.append(item)
            self._write_user_mirror(category, existing)
        except (NotFound, OSError) as exc:
            LOG.error(f"Cannot update {category.value} without a store: {exc}")
            return False
        self._cache_upsert(category, item)
        return True

    def _delete_from_mirror(self, category: Category, item_id: str) -> bool:
        try:
            existing = self._read_user_mirror(category)
            remaining = [record for record in existing if record.get("id") != item_id]
            if len(remaining) == len(existing):
                return False
            self._write_user_mirror(category, remaining)
        except OSError as exc:
            LOG.error(f"Error deleting {item_id} from key/value mirror: {exc}")
            return False
        self._cache_remove(category, item_id)
        return True

    # cache helpers ------------------------------------------------------------

    def _cache_upsert(self, category: Category, item: Record) -> None:
        records = self.cache.get(category)
        if records is None:
            records = []
            self.cache.set(category, records)
        clone = copy.deepcopy(item)
        for index, existing in enumerate(records):
            if existing.get("id") == clone["id"]:
                records[index] = clone
                return
        records.append(clone)

    def _cache_remove(self, category: Category, item_id: str) -> None:
        records = self.cache.get(category)
        if records is not None:
            self.cache.set(category, [record for record in records if record.get("id") != item_id])

    def get_cached(self, category: "str | Category") -> List[Record]:
        return copy.deepcopy(self.cache.get(Category.parse(category)) or [])

    def _generate_user_id(self, category: Category, taken: Optional[Set[str]] = None) -> str:
        taken = set(taken or ())
        taken.update(str(record.get("id")) for record in self.cache.get(category) or [])
        stamp = int(time.time() * 1000)
        while f"user-{category.abbrev}-{stamp}" in taken:
            stamp += 1
        return f"user-{category.abbrev}-{stamp}"

    # reads --------------------------------------------------------------------

    async def get_all(self, category: "str | Category") -> List[Record]:
        """All records of a category, read through the store when it is usable."""
        category = Category.parse(category)
        await self._ensure_initialized()
        records: Optional[List[Record]] = None
        if self.store_available:
            try:
                records = await self._read_through(category)
            except Exception as exc:
                LOG.error(f"Error getting {category.table} from store, falling back to cache: {exc}")
        if records is None:
            records = self.cache.get(category) or []
        records = copy.deepcopy(records)
        if category is Category.VERB:
            records = self._present_verbs(records)
        LOG.debug(f"Returning {len(records)} {category.table}")
        return records

    async def _read_through(self, category: Category) -> List[Record]:
        table = category.table
        cached = self.cache.get(category) or []
        if cached and await self.store.get_store_count(table) == 0:
            LOG.info(f"{table} store is empty, repopulating {len(cached)} items from cache")
            await self.store.bulk_add_data(table, cached)
        stored = await self.store.get_all_data(table)
        stored_ids = {str(record.get("id")) for record in stored}
        pending = [
            record
            for record in self._read_user_mirror(category)
            if record.get("id") and str(record["id"]) not in stored_ids and not is_predefined(record)
        ]
        records = combine_and_validate([migrate_origin(record) for record in stored + pending], category)
        self.cache.set(category, records)
        return records

    def _present_verbs(self, verbs: List[Record]) -> List[Record]:
        presented = []
        for verb in verbs:
            if is_predefined(verb) or matches_legacy_prefix(verb):
                LOG.debug(f"Filtering out predefined verb: {verb.get('id')} - {verb.get('infinitive')}")
                continue
            english = verb.get("english")
            if not isinstance(english, str) or not english.startswith("to "):
                verb["english"] = f"to {verb.get('infinitive') or 'unknown'}"
            presented.append(verb)
        return presented

    async def get_all_words(self) -> List[Record]:
        return await self.get_all(Category.WORD)

    async def get_all_verbs(self) -> List[Record]:
        return await self.get_all(Category.VERB)

    async def get_all_sentences(self) -> List[Record]:
        return await self.get_all(Category.SENTENCE)

    async def get_all_numbers(self) -> List[Record]:
        return await self.get_all(Category.NUMBER)

    async def find_duplicates(self, category: "str | Category") -> List[Dict[str, object]]:
        return find_duplicates(await self.get_all(category))

    # writes -------------------------------------------------------------------

    def _prepare_user_record(self, category: Category, record: Record, taken: Optional[Set[str]] = None) -> Record:
        """Validate and stamp a user record; raise ValidationFailure otherwise."""
        if not isinstance(record, dict):
            raise ValidationFailure(f"{category.value}: record is not a mapping")
        item = normalize_record(category, copy.deepcopy(record))
        if is_predefined(item) or matches_legacy_prefix(item):
            raise ValidationFailure(f"{category.value} {item.get('id')!r} is predefined content")
        validate_record(category, item)
        now = now_iso()
        item["id"] = str(item.get("id") or self._generate_user_id(category, taken))
        item["createdAt"] = item.get("createdAt") or now
        item["updatedAt"] = now
        item["isPredefined"] = False
        item["origin"] = Origin.USER.value
        if category is Category.NUMBER:
            item["category"] = "number"
        elif category is Category.WORD and not str(item.get("category") or "").strip():
            item["category"] = "general"
        return item

    async def add_user_record(self, category: "str | Category", record: Record) -> bool:
        category = Category.parse(category)
        await self._ensure_initialized()
        try:
            item = self._prepare_user_record(category, record)
        except ValidationFailure as exc:
            LOG.error(f"Cannot add {category.value}: {exc}")
            return False
        item["createdAt"] = item["updatedAt"]

        if not self.store_available:
            return self._add_to_mirror(category, item)
        try:
            await self.store.add_data(category.table, item)
        except DuplicateKey as exc:
            LOG.error(f"Cannot add {category.value}: {exc}")
            return False
        except Exception as exc:
            LOG.error(f"Error adding {category.value} to store, trying key/value fallback: {exc}")
            return self._add_to_mirror(category, item)
        self._cache_upsert(category, item)
        self._mirror_user_content(category)
        LOG.info(f"Added user {category.value} {item['id']}")
        return True

    async def add_user_word(self, word: Record) -> bool:
        return await self.add_user_record(Category.WORD, word)

    async def add_user_verb(self, verb: Record) -> bool:
        return await self.add_user_record(Category.VERB, verb)

    async def add_user_sentence(self, sentence: Record) -> bool:
        return await self.add_user_record(Category.SENTENCE, sentence)

    async def add_user_number(self, number: Record) -> bool:
        return await self.add_user_record(Category.NUMBER, number)

    async def update_data(self, category: "str | Category", record: Record) -> bool:
        """Write the record through the store, then patch the cache."""
        category = Category.parse(category)
        if not isinstance(record, dict) or not record.get("id"):
            LOG.error(f"Cannot update {category.value} without an id")
            return False
        await self._ensure_initialized()
        item = normalize_record(category, copy.deepcopy(record))
        # isPredefined always follows origin
        origin = record_origin(item) or Origin.USER
        item["origin"] = origin.value
        item["isPredefined"] = origin.is_predefined
        if not is_valid(category, item):
            LOG.error(f"Cannot update {category.value} {item['id']!r}: record is invalid")
            return False
        now = now_iso()
        item["createdAt"] = item.get("createdAt") or now
        item["updatedAt"] = now

        if not self.store_available:
            return self._update_mirror(category, item)
        table = category.table
        try:
            if is_predefined(item) and await self.store.get_by_id(table, str(item["id"])) is None:
                raise NotFound(f"{table}: predefined {item['id']!r} is not stored")
            await self.store.update_data(table, item)
        except NotFound as exc:
            LOG.error(f"Refusing to re-insert purged content: {exc}")
            return False
        except Exception as exc:
            LOG.error(f"Error updating {table} item {item['id']}: {exc}")
            return False
        self._cache_upsert(category, item)
        if not is_predefined(item):
            self._mirror_user_content(category)
        return True

    async def delete_data(self, category: "str | Category", item_id: str) -> bool:
        category = Category.parse(category)
        if not item_id:
            LOG.error(f"Cannot delete {category.value}: no id given")
            return False
        await self._ensure_initialized()
        if not self.store_available:
            return self._delete_from_mirror(category, item_id)
        try:
            removed = await self.store.delete_data(category.table, item_id)
        except Exception as exc:
            LOG.error(f"Error deleting {category.table} item {item_id}: {exc}")
            return False
        if not removed:
            return self._delete_from_mirror(category, item_id)
        self._cache_remove(category, item_id)
        self._mirror_user_content(category)
        return True

    async def save_user_content(self, category: "str | Category", content: List[Record]) -> bool:
        """Replace a category's stored content with ``content`` and reload."""
        category = Category.parse(category)
        if not isinstance(content, list):
            LOG.error(f"save_user_content({category.table}) expects a list")
            return False
        await self._ensure_initialized()
        records: List[Record] = []
        taken: Set[str] = set()
        for raw in content:
            try:
                item = self._prepare_user_record(category, raw, taken)
            except ValidationFailure as exc:
                LOG.warning(f"Skipping record in save_user_content: {exc}")
                continue
            if item["id"] in taken:
                LOG.warning(f"Skipping duplicate id {item['id']!r} in save_user_content")
                continue
            taken.add(item["id"])
            records.append(item)

        success = True
        if self.store_available:
            try:
                await self.store.clear_store(category.table)
                if records:
                    success = await self.store.bulk_add_data(category.table, records)
            except Exception as exc:
                LOG.error(f"Error saving user content for {category.table}: {exc}")
                success = False
        try:
            self._write_user_mirror(category, records)
        except OSError as exc:
            LOG.error(f"Error mirroring user content for {category.table}: {exc}")
            if not self.store_available:
                success = False
        await self._reload_content()
        return success

    async def purge_predefined(self, category: "str | Category") -> PurgeReport:
        category = Category.parse(category)
        await self._ensure_initialized()
        report = PurgeReport(table=category.table)
        if not self.store_available:
            LOG.warning(f"Cannot purge predefined {category.table}: no persistent store")
            return report
        try:
            report = await purge_records(self.store, category.table, predefined_predicate())
        except Exception as exc:
            LOG.error(f"Error purging predefined {category.table}: {exc}")
            return report
        for record_id in report.deleted_ids:
            self._cache_remove(category, record_id)
        return report

    # exposure -----------------------------------------------------------------

    async def get_next_item(self, category: "str | Category", user_id: str = config.GUEST_USER_ID) -> Optional[Record]:
        return await self.tracker.get_next_item(category, user_id)

    def mark_item_as_seen(self, category: "str | Category", item_id: str, user_id: str = config.GUEST_USER_ID) -> bool:
        return self.tracker.mark_item_as_seen(category, item_id, user_id)

    # status -------------------------------------------------------------------

    def status(self) -> Dict[str, object]:
        return {
            "initialized": self.cache.initialized,
            "userId": self.cache.user_id,
            "mode": self.cache.mode.value,
            "storeAvailable": self.store_available,
            "wordCount": self.cache.count(Category.WORD),
            "verbCount": self.cache.count(Category.VERB),
            "sentenceCount": self.cache.count(Category.SENTENCE),
            "numberCount": self.cache.count(Category.NUMBER),
            "store": self.store.status() if self.store is not None else None,
        }
