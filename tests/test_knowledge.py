"""Tests for the persistent knowledge base."""

import json
from datetime import datetime, timedelta

from visionqa.knowledge import (
    ExecutionRecord,
    LearnedElementRecord,
    RetentionPolicy,
    SelectorCandidateStore,
    parse_timestamp,
)

from conftest import LOGIN_URL

CSS = "locator:input[value='Login']"
ROLE = 'getByRole:button{"name":"Login"}'


class TestRecordSuccess:
    """Test learning from selectors that worked."""

    def test_success_moves_selector_to_front(self, store):
        """The most recent success should be tried first next time."""
        store.record_success(LOGIN_URL, "loginButton", CSS)
        record = store.record_success(LOGIN_URL, "loginButton", ROLE)
        assert record.working_selectors == [ROLE, CSS]

        record = store.record_success(LOGIN_URL, "loginButton", CSS)
        assert record.working_selectors == [CSS, ROLE]

    def test_repeated_success_is_not_duplicated(self, store):
        """Recording the same selector twice keeps one entry, at the front."""
        store.record_success(LOGIN_URL, "loginButton", ROLE)
        store.record_success(LOGIN_URL, "loginButton", CSS)
        record = store.record_success(LOGIN_URL, "loginButton", CSS)
        assert record.working_selectors == [CSS, ROLE]
        assert record.working_selectors.count(CSS) == 1

        assert store.save()
        reloaded = SelectorCandidateStore(store.knowledge_dir)
        reloaded.load()
        assert reloaded.get(LOGIN_URL, "loginButton").working_selectors == [CSS, ROLE]

    def test_success_forgives_failure(self, store):
        """A selector should never be both working and failed."""
        store.record_failure(LOGIN_URL, "loginButton", CSS)
        record = store.record_success(LOGIN_URL, "loginButton", CSS)
        assert record.working_selectors == [CSS]
        assert record.failed_selectors == []
        assert record.success_rate == 100.0

    def test_success_rate(self, store):
        store.record_success(LOGIN_URL, "loginButton", ROLE)
        store.record_failure(LOGIN_URL, "loginButton", CSS)
        assert store.get(LOGIN_URL, "loginButton").success_rate == 50.0


class TestRecordFailure:
    """Test learning from selectors that failed."""

    def test_failure_only_scenario(self, store, tmp_path):
        """A first run that only fails persists a zero success rate."""
        store.record_failure(LOGIN_URL, "loginButton", CSS)
        assert store.save()

        data = json.loads((tmp_path / "knowledge-base" / "selectors.json").read_text(encoding="utf-8"))
        entry = data[f"{LOGIN_URL}-loginButton"]
        assert entry["url"] == LOGIN_URL
        assert entry["elementDescription"] == "loginButton"
        assert entry["workingSelectors"] == []
        assert entry["failedSelectors"] == [CSS]
        assert entry["successRate"] == 0

    def test_failure_does_not_touch_working_list(self, store):
        store.record_success(LOGIN_URL, "loginButton", ROLE)
        record = store.record_failure(LOGIN_URL, "loginButton", ROLE)
        assert record.working_selectors == [ROLE]
        assert record.failed_selectors == [ROLE]

    def test_repeated_failure_is_not_duplicated(self, store):
        store.record_failure(LOGIN_URL, "loginButton", CSS)
        record = store.record_failure(LOGIN_URL, "loginButton", CSS)
        assert record.failed_selectors == [CSS]


class TestLoad:
    """Test reading persisted state."""

    def test_missing_directory_gives_empty_store(self, tmp_path):
        store = SelectorCandidateStore(tmp_path / "nowhere")
        store.load()
        assert store.records() == []
        assert store.history == []

    def test_corrupt_file_gives_empty_store(self, tmp_path, caplog):
        """A corrupt knowledge base is a warning, not a crash."""
        kb = tmp_path / "kb"
        kb.mkdir()
        (kb / "selectors.json").write_text("{truncated", encoding="utf-8")
        (kb / "history.json").write_text('{"not": "a list"}', encoding="utf-8")

        store = SelectorCandidateStore(kb)
        store.load()
        assert store.records() == []
        assert store.history == []
        assert "starting fresh" in caplog.text

    def test_round_trip_through_disk(self, store, tmp_path):
        store.record_success(LOGIN_URL, "loginButton", ROLE)
        store.append_history(ExecutionRecord("login", success=True, duration=1.5))
        assert store.save()

        reloaded = SelectorCandidateStore(tmp_path / "knowledge-base")
        reloaded.load()
        assert reloaded.get(LOGIN_URL, "loginButton").working_selectors == [ROLE]
        assert reloaded.history[0].test_name == "login"
        assert reloaded.history[0].duration == 1.5

    def test_identity_recovered_from_key(self):
        """Entries written without url/name fall back to the map key."""
        record = LearnedElementRecord.from_dict(
            {"workingSelectors": [CSS], "failedSelectors": []}, key=f"{LOGIN_URL}-loginButton"
        )
        assert record.url == LOGIN_URL
        assert record.element_name == "loginButton"


class TestSave:
    """Test merging concurrent writers."""

    def test_two_stores_merge(self, tmp_path):
        """Changes from two runs sharing a directory should both survive."""
        kb = tmp_path / "kb"
        first = SelectorCandidateStore(kb)
        second = SelectorCandidateStore(kb)
        first.load()
        second.load()

        first.record_success(LOGIN_URL, "loginButton", ROLE)
        first.append_history(ExecutionRecord("run-a", success=True))
        second.record_failure(LOGIN_URL, "loginButton", CSS)
        second.record_success(LOGIN_URL, "emailInput", "getByLabel:E-Mail Address")
        second.append_history(ExecutionRecord("run-b", success=False))

        assert first.save()
        assert second.save()

        merged = SelectorCandidateStore(kb)
        merged.load()
        button = merged.get(LOGIN_URL, "loginButton")
        assert button.working_selectors == [ROLE]
        assert button.failed_selectors == [CSS]
        assert merged.get(LOGIN_URL, "emailInput") is not None
        assert [h.test_name for h in merged.history] == ["run-a", "run-b"]

    def test_pending_changes_are_not_replayed_twice(self, store, tmp_path):
        store.append_history(ExecutionRecord("once", success=True))
        assert store.save()
        assert store.save()
        assert len(store.history) == 1

    def test_unwritable_directory_returns_false(self, tmp_path):
        """Losing learning must not raise."""
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        store = SelectorCandidateStore(blocker / "kb")
        store.record_success(LOGIN_URL, "loginButton", ROLE)
        assert store.save() is False


class TestRetention:
    """Test bounded growth."""

    def test_old_records_and_history_are_dropped(self):
        now = datetime(2026, 6, 1, 12, 0)
        old = now - timedelta(days=200)
        records = {
            "old": LearnedElementRecord("u", "old", working_selectors=[CSS], last_updated=old),
            "new": LearnedElementRecord("u", "new", working_selectors=[CSS], last_updated=now),
        }
        history = [ExecutionRecord("a", True, timestamp=old), ExecutionRecord("b", True, timestamp=now)]

        kept, kept_history = RetentionPolicy().apply(records, history, now=now)
        assert list(kept) == ["new"]
        assert [h.test_name for h in kept_history] == ["b"]

    def test_selector_lists_are_capped(self):
        record = LearnedElementRecord(
            "u", "el",
            working_selectors=[f"locator:#w{i}" for i in range(5)],
            failed_selectors=[f"locator:#f{i}" for i in range(5)],
        )
        kept, _ = RetentionPolicy(max_selectors_per_list=2).apply({"k": record}, [])
        # Keep the most recent successes and the most recent failures
        assert kept["k"].working_selectors == ["locator:#w0", "locator:#w1"]
        assert kept["k"].failed_selectors == ["locator:#f3", "locator:#f4"]

    def test_history_is_capped(self):
        history = [ExecutionRecord(str(i), True) for i in range(10)]
        _, kept = RetentionPolicy(max_history_entries=3).apply({}, history)
        assert [h.test_name for h in kept] == ["7", "8", "9"]

    def test_limits_can_be_disabled(self):
        history = [ExecutionRecord(str(i), True, timestamp=datetime(2000, 1, 1)) for i in range(3)]
        _, kept = RetentionPolicy(None, None, None).apply({}, history)
        assert len(kept) == 3


def test_parse_timestamp_accepts_zulu_and_garbage():
    assert parse_timestamp("2026-01-01T10:00:00").hour == 10
    assert parse_timestamp("2026-01-01T10:00:00Z").tzinfo is None
    assert isinstance(parse_timestamp("yesterday"), datetime)
