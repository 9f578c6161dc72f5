"""Time-boxed cache in front of program report generation."""

import json
import logging
import os
import re
import tempfile
import time
from datetime import timedelta
from pathlib import Path
from typing import Callable

from program_report.exceptions import CacheUnavailableError
from program_report.models import CachedReport, ProgramReport
from program_report.report import report_from_dict, report_to_dict

logger = logging.getLogger(__name__)

CACHE_TTL = timedelta(minutes=5)
CACHE_KEY_PREFIX = "program-report-"


class MemoryStore:
    """In-process cache store."""

    def __init__(self) -> None:
        self._entries: dict[str, dict] = {}

    def get(self, key: str) -> dict | None:
        return self._entries.get(key)

    def set(self, key: str, entry: dict) -> None:
        self._entries[key] = entry


class FileStore:
    """Cache store keeping one JSON file per key in a directory.

    Entries are written to a temporary file and moved into place, so readers
    see either the previous entry or the complete new one.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / (re.sub(r"[^A-Za-z0-9._-]", "_", key) + ".json")

    def get(self, key: str) -> dict | None:
        path = self._path(key)
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except ValueError:
            # JSONDecodeError and UnicodeDecodeError
            logger.warning("Ignoring unreadable cache entry %s", path)
            return None
        except OSError as e:
            raise CacheUnavailableError(f"Cannot read cache entry {path}: {e}") from e

    def set(self, key: str, entry: dict) -> None:
        path = self._path(key)
        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.directory, suffix=".tmp", delete=False
            ) as f:
                tmp_name = f.name
                json.dump(entry, f)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise CacheUnavailableError(f"Cannot write cache entry {path}: {e}") from e


class ReportCache:
    """Serves program reports from the store while they are younger than ``ttl``.

    Store failures never fail a request: a read failure counts as a miss and
    a write failure is skipped. Concurrent misses for the same program each
    recompute, and the last write wins.
    """

    def __init__(
        self,
        store,
        builder: Callable[[str], ProgramReport],
        ttl: timedelta = CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.builder = builder
        self.ttl = ttl
        self.clock = clock

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _read(self, program_key: str, cache_key: str) -> CachedReport | None:
        try:
            cached = self.store.get(cache_key)
        except CacheUnavailableError as e:
            logger.warning("Cache read error (non-fatal): %s", e)
            return None
        if not cached:
            return None

        try:
            age = timedelta(milliseconds=self._now_ms() - cached["timestamp"])
            if age >= self.ttl:
                return None
            report = report_from_dict(cached["data"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Discarding malformed cache entry for %s: %s", program_key, e)
            return None

        logger.info("Cache hit for %s, age: %.1fs", program_key, age.total_seconds())
        return CachedReport(report=report, from_cache=True, cache_age=age)

    def get(self, program_key: str, force_refresh: bool = False) -> CachedReport:
        """Return the report for ``program_key``, computing it on a miss."""
        cache_key = f"{CACHE_KEY_PREFIX}{program_key}"

        if not force_refresh:
            hit = self._read(program_key, cache_key)
            if hit is not None:
                return hit

        logger.info("Cache miss for %s, generating fresh report", program_key)
        report = self.builder(program_key)

        try:
            self.store.set(cache_key, {"data": report_to_dict(report), "timestamp": self._now_ms()})
            logger.info("Cache updated for %s", program_key)
        except CacheUnavailableError as e:
            logger.warning("Cache write error (non-fatal): %s", e)

        return CachedReport(report=report, from_cache=False)
