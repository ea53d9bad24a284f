"""
Persistent knowledge base of selectors that worked or failed per element.

Layout of the knowledge directory:

    knowledge-base/
    ├── selectors.json          # "{pageUrl}-{elementName}" -> LearnedElementRecord
    ├── history.json            # execution history, oldest first
    ├── learning-report.json    # written by KnowledgeUpdater
    └── .lock                   # cross-process writer lock

Several test runs may share one knowledge directory. Mutations are applied
to the in-memory view immediately and also journaled; save() takes the
writer lock, re-reads what is on disk, replays the journal on top of it and
writes every file atomically. Concurrent runs therefore merge instead of
overwriting each other.
"""

import json
import logging
import threading
from collections import namedtuple
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from filelock import FileLock, Timeout

from .assets import write_json_atomic

logger = logging.getLogger(__name__)

SELECTORS_FILE = "selectors.json"
HISTORY_FILE = "history.json"
LOCK_FILE = ".lock"


def record_key(page_url: str, element_name: str) -> str:
    return f"{page_url}-{element_name}"


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp (with or without ``Z``) into a naive local datetime."""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            text = str(value)
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
        except (TypeError, ValueError):
            return datetime.now()
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


@dataclass
class LearnedElementRecord:
    """What the knowledge base remembers about one element on one page."""

    url: str
    element_name: str
    working_selectors: List[str] = field(default_factory=list)  # most recent success first
    failed_selectors: List[str] = field(default_factory=list)
    last_updated: datetime = field(default_factory=datetime.now)
    success_rate: float = 100.0

    @property
    def key(self) -> str:
        return record_key(self.url, self.element_name)

    def recompute_success_rate(self) -> float:
        """Percentage of known selectors that worked; 100 when nothing is known yet."""
        total = len(self.working_selectors) + len(self.failed_selectors)
        self.success_rate = (len(self.working_selectors) / total) * 100 if total else 100.0
        return self.success_rate

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "elementDescription": self.element_name,
            "workingSelectors": list(self.working_selectors),
            "failedSelectors": list(self.failed_selectors),
            "lastUpdated": self.last_updated.isoformat(),
            "successRate": self.success_rate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], key: str = "") -> "LearnedElementRecord":
        url = data.get("url")
        name = data.get("elementDescription") or data.get("elementName")
        if (not url or not name) and key:
            # Recover identity from the map key: "{url}-{name}"
            head, _, tail = key.rpartition("-")
            url = url or head
            name = name or tail
        record = cls(
            url=str(url or ""),
            element_name=str(name or ""),
            working_selectors=_unique_strings(data.get("workingSelectors")),
            failed_selectors=_unique_strings(data.get("failedSelectors")),
            last_updated=parse_timestamp(data.get("lastUpdated")),
        )
        record.recompute_success_rate()
        return record


def _unique_strings(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    seen = []
    for value in values:
        if isinstance(value, str) and value not in seen:
            seen.append(value)
    return seen


@dataclass
class ExecutionRecord:
    """One test run, successful or not."""

    test_name: str
    success: bool
    timestamp: datetime = field(default_factory=datetime.now)
    duration: float = 0.0
    failure_analysis: Optional[Dict[str, Any]] = None
    environment: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "testName": self.test_name,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
            "duration": self.duration,
            "environment": dict(self.environment),
        }
        if self.failure_analysis is not None:
            data["failureAnalysis"] = self.failure_analysis
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionRecord":
        return cls(
            test_name=str(data.get("testName", "")),
            success=bool(data.get("success", False)),
            timestamp=parse_timestamp(data.get("timestamp")),
            duration=float(data.get("duration") or 0.0),
            failure_analysis=data.get("failureAnalysis"),
            environment=data.get("environment") or {},
        )


@dataclass
class RetentionPolicy:
    """Bounds on knowledge-base growth. ``None`` disables a limit."""

    max_age_days: Optional[int] = 180
    max_selectors_per_list: Optional[int] = 20
    max_history_entries: Optional[int] = 500

    def apply(
        self,
        records: Dict[str, LearnedElementRecord],
        history: List[ExecutionRecord],
        now: Optional[datetime] = None,
    ) -> Tuple[Dict[str, LearnedElementRecord], List[ExecutionRecord]]:
        now = now or datetime.now()
        kept: Dict[str, LearnedElementRecord] = {}
        for key, record in records.items():
            if self.max_age_days is not None and now - record.last_updated > timedelta(days=self.max_age_days):
                continue
            if self.max_selectors_per_list is not None:
                limit = self.max_selectors_per_list
                record.working_selectors = record.working_selectors[:limit]
                if len(record.failed_selectors) > limit:
                    record.failed_selectors = record.failed_selectors[-limit:]
                record.recompute_success_rate()
            kept[key] = record

        if self.max_age_days is not None:
            cutoff = now - timedelta(days=self.max_age_days)
            history = [h for h in history if h.timestamp >= cutoff]
        if self.max_history_entries is not None and len(history) > self.max_history_entries:
            history = history[-self.max_history_entries:]
        return kept, history


# A journaled store mutation, replayed onto the on-disk state at save time
_Mutation = namedtuple("_Mutation", ["success", "url", "element_name", "selector", "timestamp"])


def _apply_mutation(records: Dict[str, LearnedElementRecord], op: _Mutation) -> LearnedElementRecord:
    key = record_key(op.url, op.element_name)
    record = records.get(key)
    if record is None:
        record = LearnedElementRecord(url=op.url, element_name=op.element_name, last_updated=op.timestamp)
        records[key] = record

    if op.success:
        if op.selector in record.working_selectors:
            record.working_selectors.remove(op.selector)
        record.working_selectors.insert(0, op.selector)
        if op.selector in record.failed_selectors:
            record.failed_selectors.remove(op.selector)
    elif op.selector not in record.failed_selectors:
        record.failed_selectors.append(op.selector)

    record.recompute_success_rate()
    if op.timestamp >= record.last_updated:
        record.last_updated = op.timestamp
    return record


class SelectorCandidateStore:
    """
    Repository of LearnedElementRecords for a knowledge directory.

    Usage:
        store = SelectorCandidateStore("./knowledge-base")
        store.load()

        store.record_success(url, "loginButton", "getByRole:button")
        store.record_failure(url, "emailInput", "locator:#email")

        store.save()
    """

    def __init__(
        self,
        knowledge_dir="./knowledge-base",
        retention: Optional[RetentionPolicy] = None,
        lock_timeout: float = 10.0,
    ):
        self.knowledge_dir = Path(knowledge_dir)
        self.retention = retention or RetentionPolicy()
        self.lock_timeout = lock_timeout

        self._records: Dict[str, LearnedElementRecord] = {}
        self._history: List[ExecutionRecord] = []
        self._pending: List[_Mutation] = []
        self._pending_history: List[ExecutionRecord] = []
        self._mutex = threading.Lock()

    @property
    def selectors_path(self) -> Path:
        return self.knowledge_dir / SELECTORS_FILE

    @property
    def history_path(self) -> Path:
        return self.knowledge_dir / HISTORY_FILE

    @property
    def lock_path(self) -> Path:
        return self.knowledge_dir / LOCK_FILE

    # ------------------------------------------------------------------
    # Reading

    def load(self) -> None:
        """Load persisted state. Missing or corrupt files give an empty store."""
        with self._mutex:
            self._records = self._read_records()
            self._history = self._read_history()
            self._pending.clear()
            self._pending_history.clear()
        logger.info(
            "Loaded knowledge base from %s: %d elements, %d executions",
            self.knowledge_dir, len(self._records), len(self._history),
        )

    def _read_json(self, path: Path, expected: type):
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s, starting fresh: %s", path, e)
            return None
        if not isinstance(data, expected):
            logger.warning("Unexpected content in %s, starting fresh", path)
            return None
        return data

    def _read_records(self) -> Dict[str, LearnedElementRecord]:
        data = self._read_json(self.selectors_path, dict) or {}
        records = {}
        for key, raw in data.items():
            if not isinstance(raw, dict):
                logger.warning("Skipping malformed knowledge entry %r", key)
                continue
            record = LearnedElementRecord.from_dict(raw, key)
            records[record.key] = record
        return records

    def _read_history(self) -> List[ExecutionRecord]:
        data = self._read_json(self.history_path, list) or []
        return [ExecutionRecord.from_dict(raw) for raw in data if isinstance(raw, dict)]

    def get(self, page_url: str, element_name: str) -> Optional[LearnedElementRecord]:
        return self._records.get(record_key(page_url, element_name))

    def records(self) -> List[LearnedElementRecord]:
        return list(self._records.values())

    @property
    def history(self) -> List[ExecutionRecord]:
        return list(self._history)

    # ------------------------------------------------------------------
    # Mutation

    def record_success(
        self, page_url: str, element_name: str, selector: str, timestamp: Optional[datetime] = None
    ) -> LearnedElementRecord:
        """Move ``selector`` to the front of the working list and forgive past failures."""
        return self._mutate(_Mutation(True, page_url, element_name, selector, timestamp or datetime.now()))

    def record_failure(
        self, page_url: str, element_name: str, selector: str, timestamp: Optional[datetime] = None
    ) -> LearnedElementRecord:
        """Remember that ``selector`` failed; the working list is left alone."""
        return self._mutate(_Mutation(False, page_url, element_name, selector, timestamp or datetime.now()))

    def _mutate(self, op: _Mutation) -> LearnedElementRecord:
        with self._mutex:
            self._pending.append(op)
            return _apply_mutation(self._records, op)

    def append_history(self, record: ExecutionRecord) -> None:
        with self._mutex:
            self._history.append(record)
            self._pending_history.append(record)

    # ------------------------------------------------------------------
    # Persistence

    def save(self) -> bool:
        """
        Merge pending changes into the on-disk knowledge base.

        Returns False (after logging) when the knowledge base could not be
        written; losing learning never fails the calling test run.
        """
        with self._mutex:
            try:
                self.knowledge_dir.mkdir(parents=True, exist_ok=True)
                with FileLock(str(self.lock_path), timeout=self.lock_timeout):
                    records = self._read_records()
                    for op in self._pending:
                        _apply_mutation(records, op)
                    history = self._read_history() + self._pending_history
                    records, history = self.retention.apply(records, history)

                    write_json_atomic(self.selectors_path, {k: r.to_dict() for k, r in records.items()})
                    write_json_atomic(self.history_path, [h.to_dict() for h in history])
            except Timeout:
                logger.error("Timed out waiting for knowledge base lock %s", self.lock_path)
                return False
            except OSError as e:
                logger.error("Could not save knowledge base to %s: %s", self.knowledge_dir, e)
                return False

            self._records = records
            self._history = history
            self._pending.clear()
            self._pending_history.clear()
        return True

    def write_artifact(self, name: str, payload: Any) -> Optional[Path]:
        """Write an auxiliary JSON file (e.g. a report) into the knowledge directory."""
        try:
            return write_json_atomic(self.knowledge_dir / name, payload)
        except OSError as e:
            logger.error("Could not write %s: %s", name, e)
            return None
