"""Append-only JSON-lines table with an in-memory index.

Every table lives in ``<storage_dir>/<name>.jsonl``. Each line is one entry::

    {"op": "put", "key": "col_1a2b3c4d", "value": {...record document...}}
    {"op": "del", "key": "col_1a2b3c4d"}

Replaying the log from the top rebuilds the current records. A mutation
appends its entries instead of rewriting the table, and once the log has grown
well past the number of live records it is compacted into a snapshot that
atomically replaces the old file.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Callable, Generic, Iterable, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from photodrop.errors import InternalError
from photodrop.models.base import Record

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)

# Turns a legacy whole-table JSON document into (key, raw record) pairs
LegacyReader = Callable[[object], Iterable[tuple[str, dict]]]


def put_entry(key: str, record: Record) -> dict:
    return {"op": "put", "key": key, "value": record.to_document()}


def del_entry(key: str) -> dict:
    return {"op": "del", "key": key}


class LogTable(Generic[R]):
    def __init__(
        self,
        name: str,
        directory: Path,
        model: type[R],
        compact_min_ops: int = 200,
        legacy_reader: Optional[LegacyReader] = None,
    ):
        self.name = name
        self.path = directory / f"{name}.jsonl"
        self.legacy_path = directory / f"{name}.json"
        self.model = model
        self.compact_min_ops = compact_min_ops
        self.legacy_reader = legacy_reader
        self.records: dict[str, R] = {}
        # Held for the whole mutate-and-append critical section
        self.lock = asyncio.Lock()
        self._log_entries = 0

    # --- Loading ---

    def load(self) -> None:
        """Rebuild the index from disk. Never raises: unreadable data is skipped."""
        self.records = {}
        self._log_entries = 0

        if self.path.exists():
            skipped = self._replay()
            if skipped:
                logger.warning(
                    "Skipped %d unreadable entries in %s, rewriting log", skipped, self.path
                )
                self._rewrite_quietly()
        elif self.legacy_path.exists() and self.legacy_reader is not None:
            self._import_legacy()

        logger.info("Loaded %d %s from storage", len(self.records), self.name)

    def _replay(self) -> int:
        skipped = 0
        try:
            fh = self.path.open("r", encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("Cannot read %s, starting fresh: %s", self.path, e)
            return 0

        with fh:
            for line in fh:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                    op, key = entry["op"], entry["key"]
                    if op == "put":
                        self.records[key] = self.model.model_validate(entry["value"])
                    elif op == "del":
                        self.records.pop(key, None)
                    else:
                        raise ValueError(f"unknown op {op!r}")
                except (ValueError, KeyError, TypeError, PydanticValidationError):
                    # Covers torn writes at the tail as well as hand-edited garbage
                    skipped += 1
                    continue
                self._log_entries += 1
        return skipped

    def _import_legacy(self) -> None:
        try:
            raw = json.loads(self.legacy_path.read_text(encoding="utf-8"))
            pairs = list(self.legacy_reader(raw))
        except (OSError, ValueError, TypeError, AttributeError, KeyError) as e:
            logger.warning("No usable %s in %s, starting fresh: %s", self.name, self.legacy_path, e)
            return

        for key, doc in pairs:
            try:
                self.records[key] = self.model.model_validate(doc)
            except PydanticValidationError as e:
                logger.warning("Dropping invalid legacy %s record %s: %s", self.name, key, e)

        logger.info("Imported %d %s from %s", len(self.records), self.name, self.legacy_path)
        self._rewrite_quietly()

    def _rewrite_quietly(self) -> None:
        try:
            self._write_snapshot(self._snapshot_lines())
        except OSError as e:
            logger.error("Failed to rewrite %s: %s", self.path, e)

    # --- Writing ---

    async def commit(self, entries: list[dict]) -> None:
        """Append entries to the log. Callers hold ``self.lock``.

        Entries are encoded on the event loop so the worker thread never reads
        live records.
        """
        lines = [json.dumps(e, separators=(",", ":")) for e in entries]
        try:
            await asyncio.to_thread(self._append_lines, lines)
        except OSError as e:
            logger.error("Failed to persist %s: %s", self.name, e)
            raise InternalError(f"Failed to persist {self.name}") from e
        self._log_entries += len(lines)

    async def compact_if_needed(self) -> bool:
        if not self.needs_compaction():
            return False
        await self.compact()
        return True

    async def compact(self) -> None:
        lines = self._snapshot_lines()
        try:
            await asyncio.to_thread(self._write_snapshot, lines)
        except OSError as e:
            # The log is still valid, just longer than it needs to be
            logger.error("Failed to compact %s: %s", self.name, e)
            return
        logger.debug("Compacted %s: %d entries", self.name, len(lines))

    def needs_compaction(self) -> bool:
        return (
            self._log_entries > self.compact_min_ops
            and self._log_entries > 2 * len(self.records)
        )

    @property
    def log_entries(self) -> int:
        return self._log_entries

    def _snapshot_lines(self) -> list[str]:
        return [
            json.dumps(put_entry(key, record), separators=(",", ":"))
            for key, record in self.records.items()
        ]

    def _append_lines(self, lines: list[str]) -> None:
        with self.path.open("a", encoding="utf-8") as fh:
            for line in lines:
                fh.write(line + "\n")
            fh.flush()
            os.fsync(fh.fileno())

    def _write_snapshot(self, lines: list[str]) -> None:
        tmp = self.path.with_name(self.path.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            for line in lines:
                fh.write(line + "\n")
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, self.path)
        self._log_entries = len(lines)
