"""
Project memory cache.

One JSON record per project path under a storage root, fronted by a short
in-process read cache. Writes rotate the previous versions into backup slots
before replacing the primary file:

    <id>.backup.json      -> <id>.backup.prev.json
    <id>.json             -> <id>.backup.json
    new record            -> <id>.json  (via <id>.json.tmp + os.replace)

No method here raises on disk or parse failure. Callers get ``False``, ``None``
or a shorter list, and the failure is logged.
"""

import json
import logging
import os
import shutil
import threading
import time
from collections import defaultdict
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..config.dataclasses import default_memory_dir
from ..providers.base import as_message, now_ms
from .analyzer import ProjectAnalyzer
from .records import ProjectMemoryRecord, as_file_change, is_well_formed, record_id

logger = logging.getLogger(__name__)

CACHE_TTL = 300


class ProjectMemoryManager:
    """
    Keyed store of ProjectMemoryRecords.

    Args:
        memory_dir: Storage root; defaults to ``~/.l2api-agent/memory``
        analyzer: Used to refresh the project descriptor on every save
        cache_ttl: Seconds a cached record is trusted without re-reading disk
        clock: Monotonic seconds source for the freshness window
    """

    def __init__(
        self,
        memory_dir: Optional[Union[str, Path]] = None,
        analyzer: Optional[ProjectAnalyzer] = None,
        cache_ttl: float = CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.memory_dir = Path(memory_dir or default_memory_dir()).expanduser()
        self.analyzer = analyzer or ProjectAnalyzer()
        self.cache_ttl = cache_ttl
        self.clock = clock

        self._cache: Dict[str, Tuple[ProjectMemoryRecord, float]] = {}
        self._locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

        try:
            self.memory_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create memory directory %s: %s", self.memory_dir, e)

    def _lock_for(self, project_path: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks[project_path]

    def record_paths(self, project_path: str) -> Tuple[Path, Path, Path]:
        """Primary, backup and secondary backup file for a project path."""
        stem = record_id(project_path)
        return (
            self.memory_dir / f"{stem}.json",
            self.memory_dir / f"{stem}.backup.json",
            self.memory_dir / f"{stem}.backup.prev.json",
        )

    def save(
        self,
        project_path: str,
        conversation_history: Iterable[Any] = (),
        open_files: Iterable[str] = (),
        recent_changes: Iterable[Any] = (),
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Analyze the project and persist a full record for it.

        Caller-supplied ``metadata`` is kept; ``lastOpened``, ``openFiles``,
        ``recentChanges``, ``projectStats`` and ``gitInfo`` are always
        recomputed.
        """
        try:
            history = [as_message(m) for m in conversation_history]
            changes = [as_file_change(c) for c in recent_changes]
            open_files = list(open_files)

            descriptor = self.analyzer.describe(project_path)
            descriptor = replace(descriptor, open_files=open_files, recent_changes=changes)
            stats = self.analyzer.stats(project_path)
            git_info = self.analyzer.git_info(project_path)

            now = now_ms()
            record_metadata = dict(metadata or {})
            record_metadata.setdefault("userPreferences", {})
            record_metadata.update(
                lastOpened=now,
                openFiles=open_files,
                recentChanges=[change.to_dict() for change in changes],
                projectStats=stats.to_dict(),
            )
            if git_info is not None:
                record_metadata["gitInfo"] = git_info.to_dict()
            else:
                record_metadata.pop("gitInfo", None)

            record = ProjectMemoryRecord(
                id=record_id(project_path),
                project_path=project_path,
                timestamp=now,
                context=descriptor,
                conversation_history=history,
                metadata=record_metadata,
            )

            with self._lock_for(project_path):
                self._write_record(record)
                self._cache[project_path] = (record, self.clock())
        except (OSError, TypeError, ValueError, KeyError) as e:
            logger.error("Failed to save project state for %s: %s", project_path, e)
            return False

        logger.debug("Saved project state for %s", project_path)
        return True

    def load(self, project_path: str) -> Optional[ProjectMemoryRecord]:
        """Cached record, else primary file, else backup file, else None."""
        cached = self._cache.get(project_path)
        if cached is not None:
            record, loaded_at = cached
            if self.clock() - loaded_at < self.cache_ttl:
                return record

        primary, backup, _ = self.record_paths(project_path)
        if not primary.exists():
            self._cache.pop(project_path, None)
            return None

        record = self._read_record_file(primary)
        if record is None:
            logger.warning("Invalid memory record for %s, recovering from backup", project_path)
            record = self._read_record_file(backup)

        if record is None:
            self._cache.pop(project_path, None)
            return None

        self._cache[project_path] = (record, self.clock())
        return record

    def delete(self, project_path: str) -> bool:
        """Remove every file of a project's record; already-absent files are fine."""
        with self._lock_for(project_path):
            self._cache.pop(project_path, None)
            for path in self.record_paths(project_path):
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as e:
                    logger.error("Failed to delete %s: %s", path, e)
                    return False
        return True

    def update_metadata_only(self, project_path: str, updates: Dict[str, Any]) -> bool:
        """Shallow-merge ``updates`` over the stored metadata and rewrite the record."""
        with self._lock_for(project_path):
            record = self.load(project_path)
            if record is None:
                return False

            updated = replace(
                record,
                metadata={**record.metadata, **updates},
                timestamp=now_ms(),
            )
            try:
                self._write_record(updated)
            except (OSError, TypeError, ValueError) as e:
                logger.error("Failed to update project metadata for %s: %s", project_path, e)
                return False
            self._cache[project_path] = (updated, self.clock())
        return True

    def list_memories(self) -> List[ProjectMemoryRecord]:
        """Every valid record, most recently opened first."""
        try:
            names = sorted(os.listdir(self.memory_dir))
        except OSError as e:
            logger.error("Failed to list project memories: %s", e)
            return []

        records = []
        for name in names:
            if not name.endswith(".json") or ".backup" in name:
                continue
            record = self._read_record_file(self.memory_dir / name)
            if record is not None:
                records.append(record)

        records.sort(key=lambda r: r.last_opened, reverse=True)
        return records

    def recent_memories(self, limit: int = 10) -> List[ProjectMemoryRecord]:
        return self.list_memories()[:limit]

    def search_memories(self, query: str) -> List[ProjectMemoryRecord]:
        """Records whose path, language or framework contains ``query``, ignoring case."""
        query = query.lower()
        return [
            record
            for record in self.list_memories()
            if query in record.project_path.lower()
            or query in (record.context.language or "").lower()
            or query in (record.context.framework or "").lower()
        ]

    def clear_cache(self):
        self._cache.clear()

    def _read_record_file(self, path: Path) -> Optional[ProjectMemoryRecord]:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not is_well_formed(data):
                logger.warning("Skipping malformed memory record %s", path)
                return None
            return ProjectMemoryRecord.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Failed to load memory file %s: %s", path, e)
            return None

    def _write_record(self, record: ProjectMemoryRecord):
        primary, backup, previous = self.record_paths(record.project_path)

        # Backups only rotate once the new record is safely on disk
        payload = json.dumps(record.to_dict(), indent=2)
        tmp = primary.with_name(primary.name + ".tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(payload)

            if backup.exists():
                shutil.copyfile(backup, previous)
            if primary.exists():
                shutil.copyfile(primary, backup)
            os.replace(tmp, primary)
        except OSError:
            if tmp.exists():
                os.remove(tmp)
            raise
