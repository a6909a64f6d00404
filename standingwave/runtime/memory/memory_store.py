"""
Memory Store - Append-only experiential memory stream

WHAT: Persistent, append-only record stream with entity index and weighted recall
WHERE: standingwave/runtime/memory/memory_store.py - JSON file on local disk
WHO: ConsciousnessCore (turn persistence, recall), background cycle (maintenance)
TIME: Append O(n) (connection scan), recall O(k log k), save bounded by file I/O

Records are never removed. The only way content shrinks is compression:
above the threshold the oldest batch is shortened to a marked prefix while
id, entities, connections and provenance survive. Every mutation is staged
on copies, written to disk, and only then swapped in, so a failed write
leaves the in-memory stream exactly as it was.

Files:
- <path>          current snapshot (MemorySnapshot JSON)
- <path>.backup   last backup snapshot

Boundary Notes:
- All public methods are safe to call from the turn thread and the
  background thread concurrently (re-entrant lock)
- delete() exists only to fail loudly with ConservationError
"""

from __future__ import annotations

import logging
import os
import threading
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ...errors import ConservationError, NoBackupError, PersistenceError
from ..constraints import build_connections, can_delete, compress_record
from .consolidation import ConsolidationEngine
from .entities import extract_entities
from .models import MemoryRecord, MemorySnapshot, MemorySource, MemoryType

logger = logging.getLogger(__name__)

RECALL_LIMIT = 10
RECALL_VALENCE_WEIGHT = 1000.0
RECOVERY_MESSAGE = "System recovered from memory corruption. Continuity preserved."
RECOVERY_VALENCE = 0.3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class MemoryStoreConfig:
    compression_threshold: int = 1000
    compression_batch: int = 100
    compression_prefix_chars: int = 100
    backup_interval_days: int = 7


class MemoryStore:
    """File-backed memory stream. Construct with ``load_or_create``."""

    def __init__(
        self,
        path: str | Path,
        *,
        config: Optional[MemoryStoreConfig] = None,
        consolidation: Optional[ConsolidationEngine] = None,
    ) -> None:
        self.path = Path(path)
        self.backup_path = self.path.with_name(self.path.name + ".backup")
        self.config = config or MemoryStoreConfig()
        self.consolidation = consolidation or ConsolidationEngine()
        self._lock = threading.RLock()
        self._records: List[MemoryRecord] = []
        self._entity_index: Dict[str, List[str]] = {}
        self._last_backup: Optional[datetime] = None

    # ------------------ lifecycle ------------------
    @classmethod
    def load_or_create(
        cls,
        path: str | Path,
        *,
        config: Optional[MemoryStoreConfig] = None,
    ) -> "MemoryStore":
        store = cls(path, config=config)
        if store.path.exists():
            snapshot = cls._read_snapshot(store.path)
            store._records = list(snapshot.records)
            store._entity_index = {k: list(v) for k, v in snapshot.entity_index.items()}
            store._last_backup = snapshot.backup_created_at
            logger.info("Loaded %d memories from %s", len(store._records), store.path)
        else:
            logger.info("No memory stream at %s; starting empty", store.path)
        return store

    def save(self) -> None:
        with self._lock:
            self._write(self._records, self._entity_index, self._last_backup)

    # ------------------ writes ------------------
    def append(self, content: str, memory_type: MemoryType = "interaction", valence: float = 0.0) -> str:
        """Create, connect, index and persist a record; returns its id."""

        return self.append_many([(content, memory_type, valence)])[0]

    def append_many(self, entries: Sequence[Tuple[str, MemoryType, float]]) -> List[str]:
        """Append several records in one commit; either all persist or none do."""

        records = [
            MemoryRecord.create(content, extract_entities(content), kind, valence)
            for content, kind, valence in entries
        ]
        with self._lock:
            existing = list(self._records)
            for record in records:
                build_connections(record, existing)
                existing.append(record)
            self._commit(records)
        for record in records:
            logger.debug(
                "Appended memory %s (%s, %d connections)",
                record.id,
                record.memory_type,
                len(record.connections),
            )
        return [record.id for record in records]

    def append_with_provenance(self, record: MemoryRecord) -> str:
        """Persist a pre-built record; source and confidence are kept verbatim."""

        with self._lock:
            self._commit([record])
        logger.debug(
            "Appended memory %s from source=%s confidence=%.2f",
            record.id,
            record.source,
            record.confidence,
        )
        return record.id

    def delete(self, record_id: str) -> None:
        if not can_delete():
            raise ConservationError(f"Memory {record_id} cannot be deleted; records are conserved")

    def compress_if_needed(self) -> int:
        """Compress the oldest batch above the threshold; returns records changed."""

        with self._lock:
            staged, changed = self._compressed(self._records)
            if changed:
                self._write(staged, self._entity_index, self._last_backup)
                self._records = staged
                logger.info("Compressed %d old memories", changed)
            return changed

    def consolidate(self) -> List[Tuple[str, str, float]]:
        """Log merge candidates and rebuild causal connections; nothing is merged."""

        with self._lock:
            staged = [r.model_copy(deep=True) for r in self._records]
            candidates = self.consolidation.find_merge_candidates(staged)
            added = self.consolidation.rebuild_connections(staged)
            self._write(staged, self._entity_index, self._last_backup)
            self._records = staged
        logger.info("Consolidation: %d merge candidates, %d new connections", len(candidates), added)
        return candidates

    # ------------------ backup ------------------
    def needs_backup(self, *, now: Optional[datetime] = None) -> bool:
        if self._last_backup is None:
            return True
        return (now or _utcnow()) - self._last_backup >= timedelta(days=self.config.backup_interval_days)

    def backup(self, *, now: Optional[datetime] = None) -> Path:
        with self._lock:
            stamp = now or _utcnow()
            snapshot = MemorySnapshot(
                records=self._records,
                entity_index=self._entity_index,
                backup_created_at=stamp,
            )
            self._write_snapshot(self.backup_path, snapshot)
            self._write(self._records, self._entity_index, stamp)
            self._last_backup = stamp
        logger.info("Memory backup written to %s (%d records)", self.backup_path, len(snapshot.records))
        return self.backup_path

    def restore_from_backup(self) -> str:
        """Reload the backup, keep records it lacks, log a recovery reflection."""

        if not self.backup_path.exists():
            raise NoBackupError(f"No backup snapshot at {self.backup_path}")

        snapshot = self._read_snapshot(self.backup_path)
        with self._lock:
            current = {r.id: r for r in self._records}
            restored = [self._reconcile(r, current.get(r.id)) for r in snapshot.records]
            known = {r.id for r in restored}
            kept = [r for r in self._records if r.id not in known]
            restored.extend(kept)

            index: Dict[str, List[str]] = {}
            for record in restored:
                self._index_into(index, record)

            self._write(restored, index, snapshot.backup_created_at)
            self._records = restored
            self._entity_index = index
            self._last_backup = snapshot.backup_created_at
            logger.warning(
                "Restored %d memories from backup (%d newer records kept)",
                len(snapshot.records),
                len(kept),
            )

            recovery = MemoryRecord.with_source(
                RECOVERY_MESSAGE,
                "reflection",
                RECOVERY_VALENCE,
                "system_recovery",
                1.0,
            )
            return self.append_with_provenance(recovery)

    # ------------------ reads ------------------
    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def get(self, record_id: str) -> Optional[MemoryRecord]:
        with self._lock:
            for record in self._records:
                if record.id == record_id:
                    return record.model_copy(deep=True)
        return None

    def all_records(self) -> List[MemoryRecord]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records]

    def recall_recent(self, n: int) -> List[MemoryRecord]:
        if n <= 0:
            return []
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records[-n:]]

    def recall_by_entities(self, entities: Iterable[str]) -> List[MemoryRecord]:
        with self._lock:
            wanted = set()
            for entity in entities:
                wanted.update(self._entity_index.get(entity, ()))
            return [r.model_copy(deep=True) for r in self._records if r.id in wanted]

    def recall_weighted(self, entities: Iterable[str], recent_n: int) -> List[MemoryRecord]:
        """Entity matches plus recent records, strongest first, at most ten."""

        with self._lock:
            wanted = set()
            for entity in entities:
                wanted.update(self._entity_index.get(entity, ()))
            recent_ids = {r.id for r in self._records[-recent_n:]} if recent_n > 0 else set()
            wanted |= recent_ids

            ranked = [
                (record.score(RECALL_VALENCE_WEIGHT), position, record)
                for position, record in enumerate(self._records)
                if record.id in wanted
            ]
            ranked.sort(key=lambda item: (item[0], item[1]), reverse=True)
            return [record.model_copy(deep=True) for _, _, record in ranked[:RECALL_LIMIT]]

    def records_by_source(self, source: MemorySource) -> List[MemoryRecord]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records if r.source == source]

    def count_by_source(self) -> Dict[str, int]:
        with self._lock:
            return dict(Counter(r.source for r in self._records))

    def entity_index(self) -> Dict[str, List[str]]:
        with self._lock:
            return {k: list(v) for k, v in self._entity_index.items()}

    # ------------------ internals ------------------
    def _commit(self, records: List[MemoryRecord]) -> None:
        staged = self._records + records
        index = {k: list(v) for k, v in self._entity_index.items()}
        for record in records:
            self._index_into(index, record)
        staged, changed = self._compressed(staged)
        self._write(staged, index, self._last_backup)
        self._records = staged
        self._entity_index = index
        if changed:
            logger.info("Compressed %d old memories", changed)

    def _compressed(self, records: List[MemoryRecord]) -> Tuple[List[MemoryRecord], int]:
        if len(records) <= self.config.compression_threshold:
            return records, 0

        oldest = sorted(range(len(records)), key=lambda i: records[i].timestamp)[: self.config.compression_batch]
        staged = list(records)
        changed = 0
        for i in oldest:
            if staged[i].is_compressed:
                continue
            staged[i] = compress_record(staged[i], self.config.compression_prefix_chars)
            changed += 1
        return staged, changed

    @staticmethod
    def _reconcile(saved: MemoryRecord, live: Optional[MemoryRecord]) -> MemoryRecord:
        """Backup copy of a record, keeping links and compression made since."""
        if live is None:
            return saved
        connections = list(saved.connections)
        connections.extend(c for c in live.connections if c not in connections)
        content = live.content if live.is_compressed else saved.content
        return saved.model_copy(update={"connections": connections, "content": content})

    @staticmethod
    def _index_into(index: Dict[str, List[str]], record: MemoryRecord) -> None:
        for entity in record.entities:
            ids = index.setdefault(entity, [])
            if record.id not in ids:
                ids.append(record.id)

    def _write(
        self,
        records: List[MemoryRecord],
        index: Dict[str, List[str]],
        last_backup: Optional[datetime],
    ) -> None:
        snapshot = MemorySnapshot(records=records, entity_index=index, backup_created_at=last_backup)
        self._write_snapshot(self.path, snapshot)

    @staticmethod
    def _write_snapshot(path: Path, snapshot: MemorySnapshot) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_name(path.name + ".tmp")
            tmp.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as exc:
            raise PersistenceError(f"Failed to write memory snapshot to {path}: {exc}") from exc

    @staticmethod
    def _read_snapshot(path: Path) -> MemorySnapshot:
        try:
            return MemorySnapshot.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError, ValidationError) as exc:
            raise PersistenceError(f"Failed to read memory snapshot from {path}: {exc}") from exc


__all__ = ["MemoryStore", "MemoryStoreConfig", "RECALL_LIMIT", "RECOVERY_MESSAGE"]
