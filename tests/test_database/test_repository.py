"""Tests for Store transactions and the entries/settings collections."""

from datetime import datetime
from decimal import Decimal

import pytest

from src.database.errors import KeyAlreadyExists, TransactionFailure
from src.database.models import SETTINGS_KEY, Settings, SpendEntry
from src.database.repository import (
    ENTRIES,
    READ_ONLY,
    READ_WRITE,
    SETTINGS,
    EntryStore,
    SettingsStore,
)


def _entry(amount="12.50", note=None, ts=None) -> SpendEntry:
    return SpendEntry(
        timestamp=ts or datetime(2026, 3, 10, 9, 15, 0),
        amount=Decimal(amount),
        note=note,
    )


def _settings(**overrides) -> Settings:
    defaults = dict(
        anonymous_id="abc123",
        daily_budget=Decimal("40"),
        start_amount=Decimal("0"),
        start_date=datetime(2026, 3, 1),
    )
    defaults.update(overrides)
    return Settings(**defaults)


def _insert(store, entry) -> int:
    with store.transaction(ENTRIES, READ_WRITE) as entries:
        return entries.insert(entry)


def _all(store) -> list[SpendEntry]:
    with store.transaction(ENTRIES) as entries:
        return entries.get_all()


# ── Scopes ─────────────────────────────────────────────────


class TestTransactionScopes:
    def test_entries_scope_yields_entry_store(self, store):
        with store.transaction(ENTRIES, READ_ONLY) as entries:
            assert isinstance(entries, EntryStore)

    def test_settings_scope_yields_settings_store(self, store):
        with store.transaction(SETTINGS, READ_ONLY) as settings:
            assert isinstance(settings, SettingsStore)

    def test_unknown_scope_rejected(self, store):
        with pytest.raises(ValueError, match="Unknown transaction scope"):
            with store.transaction("accounts"):
                pass

    def test_unknown_mode_rejected(self, store):
        with pytest.raises(ValueError, match="Unknown transaction mode"):
            with store.transaction(ENTRIES, "versionchange"):
                pass

    def test_default_mode_is_read_only(self, store):
        with store.transaction(ENTRIES) as entries:
            assert entries.mode == READ_ONLY

    def test_write_in_read_only_transaction_fails(self, store):
        with pytest.raises(TransactionFailure, match="read-only"):
            with store.transaction(ENTRIES, READ_ONLY) as entries:
                entries.insert(_entry())
        assert _all(store) == []

    def test_scope_unusable_after_transaction_ends(self, store):
        with store.transaction(ENTRIES) as entries:
            pass
        with pytest.raises(TransactionFailure, match="no longer active"):
            entries.get_all()

    def test_exception_rolls_back(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction(ENTRIES, READ_WRITE) as entries:
                entries.insert(_entry())
                raise RuntimeError("boom")
        assert _all(store) == []

    def test_store_usable_after_rollback(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction(ENTRIES, READ_WRITE) as entries:
                entries.insert(_entry())
                raise RuntimeError("boom")
        _insert(store, _entry("3"))
        assert [e.amount for e in _all(store)] == [Decimal("3")]

    def test_nested_transaction_fails(self, store):
        with store.transaction(ENTRIES, READ_WRITE):
            with pytest.raises(TransactionFailure):
                with store.transaction(SETTINGS, READ_WRITE):
                    pass


# ── Entries ────────────────────────────────────────────────


class TestEntryStore:
    def test_insert_assigns_id(self, store):
        entry_id = _insert(store, _entry())
        assert isinstance(entry_id, int)
        assert entry_id >= 1

    def test_insert_ignores_caller_id(self, store):
        first = _insert(store, _entry())
        second = _insert(store, SpendEntry(
            id=first, timestamp=datetime(2026, 3, 10), amount=Decimal("1"),
        ))
        assert second != first
        assert len(_all(store)) == 2

    def test_round_trips_fields(self, store):
        ts = datetime(2026, 3, 10, 9, 15, 42, 123000)
        entry_id = _insert(store, _entry("19.99", note="lunch", ts=ts))
        with store.transaction(ENTRIES) as entries:
            found = entries.get(entry_id)
        assert found == SpendEntry(
            id=entry_id, timestamp=ts, amount=Decimal("19.99"), note="lunch",
        )

    def test_amount_keeps_decimal_precision(self, store):
        _insert(store, _entry("0.10"))
        _insert(store, _entry("0.20"))
        total = sum(e.amount for e in _all(store))
        assert total == Decimal("0.30")

    def test_note_is_optional(self, store):
        entry_id = _insert(store, _entry(note=None))
        with store.transaction(ENTRIES) as entries:
            assert entries.get(entry_id).note is None

    def test_ids_unique_and_increasing(self, store):
        ids = [_insert(store, _entry(str(i))) for i in range(1, 6)]
        assert len(set(ids)) == 5
        assert ids == sorted(ids)

    def test_get_unknown_returns_none(self, store):
        with store.transaction(ENTRIES) as entries:
            assert entries.get(999) is None

    def test_count(self, store):
        for i in range(3):
            _insert(store, _entry(str(i + 1)))
        with store.transaction(ENTRIES) as entries:
            assert entries.count() == 3

    def test_delete_removes_entry(self, store):
        keep = _insert(store, _entry("1"))
        gone = _insert(store, _entry("2"))
        with store.transaction(ENTRIES, READ_WRITE) as entries:
            entries.delete(gone)
        assert [e.id for e in _all(store)] == [keep]

    def test_delete_twice_is_noop(self, store):
        entry_id = _insert(store, _entry())
        for _ in range(2):
            with store.transaction(ENTRIES, READ_WRITE) as entries:
                entries.delete(entry_id)
        assert _all(store) == []

    def test_delete_unknown_id_is_noop(self, store):
        _insert(store, _entry())
        with store.transaction(ENTRIES, READ_WRITE) as entries:
            entries.delete(12345)
        assert len(_all(store)) == 1

    def test_ids_not_reused_after_delete(self, store):
        first = _insert(store, _entry())
        with store.transaction(ENTRIES, READ_WRITE) as entries:
            entries.delete(first)
        second = _insert(store, _entry())
        assert second > first

    def test_store_accepts_negative_amount(self, store):
        entry_id = _insert(store, _entry("-5.00"))
        with store.transaction(ENTRIES) as entries:
            assert entries.get(entry_id).amount == Decimal("-5.00")


# ── Settings ───────────────────────────────────────────────


class TestSettingsStore:
    def test_get_absent_returns_none(self, store):
        with store.transaction(SETTINGS) as settings:
            assert settings.get(SETTINGS_KEY) is None

    def test_add_then_get(self, store):
        with store.transaction(SETTINGS, READ_WRITE) as settings:
            settings.add(SETTINGS_KEY, _settings())
        with store.transaction(SETTINGS) as settings:
            assert settings.get(SETTINGS_KEY) == _settings()

    def test_add_existing_key_raises(self, store):
        with store.transaction(SETTINGS, READ_WRITE) as settings:
            settings.add(SETTINGS_KEY, _settings())
        with pytest.raises(KeyAlreadyExists) as exc_info:
            with store.transaction(SETTINGS, READ_WRITE) as settings:
                settings.add(SETTINGS_KEY, _settings(anonymous_id="other"))
        assert exc_info.value.key == SETTINGS_KEY
        with store.transaction(SETTINGS) as settings:
            assert settings.get(SETTINGS_KEY).anonymous_id == "abc123"

    def test_put_inserts_when_absent(self, store):
        with store.transaction(SETTINGS, READ_WRITE) as settings:
            settings.put(SETTINGS_KEY, _settings())
        with store.transaction(SETTINGS) as settings:
            assert settings.get(SETTINGS_KEY) == _settings()

    def test_put_overwrites(self, store):
        with store.transaction(SETTINGS, READ_WRITE) as settings:
            settings.put(SETTINGS_KEY, _settings())
            settings.put(SETTINGS_KEY, _settings(daily_budget=Decimal("12.34")))
        rows = store.conn.execute("SELECT COUNT(*) FROM settings").fetchone()[0]
        assert rows == 1
        with store.transaction(SETTINGS) as settings:
            assert settings.get(SETTINGS_KEY).daily_budget == Decimal("12.34")

    def test_reads_record_missing_fields(self, store):
        store.conn.execute(
            "INSERT INTO settings (key, daily_budget, start_amount, start_date)"
            " VALUES ('settings', '40', '0', '2026-03-01T08:45:00')"
        )
        with store.transaction(SETTINGS) as settings:
            found = settings.get(SETTINGS_KEY)
        assert found.anonymous_id is None
        assert found.start_date == datetime(2026, 3, 1, 8, 45)

    def test_reads_numeric_columns_written_as_numbers(self, store):
        store.conn.execute(
            "INSERT INTO settings (key, anonymous_id, daily_budget, start_amount, start_date)"
            " VALUES ('settings', 'x', 40, 12.5, '2026-03-01T00:00:00')"
        )
        with store.transaction(SETTINGS) as settings:
            found = settings.get(SETTINGS_KEY)
        assert found.daily_budget == Decimal("40")
        assert found.start_amount == Decimal("12.5")
