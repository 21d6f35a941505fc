"""Maintenance helpers: find and purge predefined records, report table sizes.

Run as ``python -m frenchmaster.maintenance {stats,list,purge}``.
"""
from __future__ import annotations

import argparse
import asyncio
import json
from typing import Callable, Dict, List, Optional, Sequence

from . import config
from .content import is_predefined, matches_legacy_prefix
from .errors import FrenchMasterError
from .logging import get_logger
from .models import PurgeReport
from .store import ContentStore

LOG = get_logger("maintenance")

Record = Dict[str, object]


def predefined_predicate() -> Callable[[Record], bool]:
    """Match records flagged predefined or carrying a legacy predefined id."""

    def _match(record: Record) -> bool:
        return is_predefined(record) or matches_legacy_prefix(record)

    return _match


async def find_predefined(store: ContentStore, table: str) -> List[Record]:
    return await store.scan(table, predefined_predicate())


async def purge_records(store: ContentStore, table: str, predicate: Callable[[Record], bool]) -> PurgeReport:
    """Delete every record of ``table`` matching ``predicate``, one id at a time.

    A failed delete is counted and logged; the pass continues.
    """
    records = await store.get_all_data(table)
    report = PurgeReport(table=table, total=len(records))
    matches = [record for record in records if predicate(record)]
    LOG.info(f"Found {len(matches)} of {len(records)} {table} to purge")
    for record in matches:
        record_id = str(record.get("id") or "")
        try:
            removed = await store.delete_data(table, record_id)
        except Exception as exc:
            LOG.error(f"Failed to delete {table} item {record_id!r}: {exc}")
            report.failed += 1
            continue
        if removed:
            report.deleted += 1
            report.deleted_ids.append(record_id)
        else:
            report.failed += 1
    LOG.info(f"Purge of {table} complete: {report.deleted} deleted, {report.failed} failed")
    return report


async def purge_predefined(store: ContentStore, table: str) -> PurgeReport:
    return await purge_records(store, table, predefined_predicate())


async def store_stats(store: ContentStore) -> Dict[str, Dict[str, int]]:
    """Per table: total rows, predefined rows, user rows."""
    stats: Dict[str, Dict[str, int]] = {}
    match = predefined_predicate()
    for table in store.tables:
        records = await store.get_all_data(table)
        predefined = sum(1 for record in records if match(record))
        stats[table] = {"total": len(records), "predefined": predefined, "user": len(records) - predefined}
    return stats


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="frenchmaster.maintenance",
        description="Inspect the content database and purge predefined records.",
    )
    parser.add_argument("--db", default=str(config.DB_PATH), help="SQLite database path")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("stats", help="show total/predefined/user rows per table")
    for name, text in (("list", "list predefined records"), ("purge", "delete predefined records")):
        cmd = sub.add_parser(name, help=text)
        cmd.add_argument("table", choices=config.CONTENT_STORES)
    return parser


async def run(args: argparse.Namespace) -> Dict[str, object]:
    store = ContentStore(args.db)
    await store.initialize()
    if args.command == "stats":
        return {"stats": await store_stats(store)}
    if args.command == "list":
        records = await find_predefined(store, args.table)
        return {"table": args.table, "count": len(records), "ids": [record.get("id") for record in records]}
    return (await purge_predefined(store, args.table)).as_dict()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        result = asyncio.run(run(args))
    except FrenchMasterError as exc:
        LOG.error(f"Maintenance command failed: {exc}")
        return 1
    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
