"""
Tests for storage backends.

Google Sheets storage runs against an in-process fake worksheet; no
network calls are made.
"""

import asyncio
from uuid import uuid4

import pytest

from budget_dss.models.audit import AuditEventBuilder, AuditEventType
from budget_dss.models.planning import Goal, GoalStatus
from budget_dss.models.workflow import MonthStateVersion
from budget_dss.services.storage import (
    InMemoryAuditStorage,
    InMemoryMonthStateStorage,
    InMemoryPlanningInputs,
    NotFoundError,
    StorageError,
    VersionConflictError,
)
from budget_dss.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    MONTH_STATE_COLUMNS,
    GoogleSheetsAuditStorage,
    GoogleSheetsMonthStateStorage,
)


def month_state(version, month_id="2025-01", total=900.0):
    return MonthStateVersion(
        month_id=month_id,
        version=version,
        monthly_income=1000,
        total_allocated=total,
        to_be_budgeted=1000 - total,
        category_allocations={"rent": total},
        correlation_id=uuid4(),
    )


class FakeWorksheet:
    def __init__(self, header):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append([str(v) for v in row])


class FakeSheetsClient:
    def __init__(self):
        self.month_states = FakeWorksheet(MONTH_STATE_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_month_states_sheet(self):
        return self.month_states

    def get_audit_sheet(self):
        return self.audit


class TestInMemoryMonthStateStorage:
    """Tests for versioned month state storage."""

    def test_empty_month_is_version_zero(self):
        storage = InMemoryMonthStateStorage()
        assert asyncio.run(storage.get_current_version("2025-01")) == 0
        assert asyncio.run(storage.get_latest_state("2025-01")) is None

    def test_append_in_sequence(self):
        storage = InMemoryMonthStateStorage()

        async def scenario():
            await storage.append_state(month_state(1), expected_version=0)
            await storage.append_state(month_state(2, total=950), expected_version=1)
            return await storage.list_versions("2025-01")

        versions = asyncio.run(scenario())
        assert [v.version for v in versions] == [1, 2]
        assert asyncio.run(storage.get_latest_state("2025-01")).total_allocated == 950

    def test_stale_expected_version_conflicts(self):
        storage = InMemoryMonthStateStorage()
        asyncio.run(storage.append_state(month_state(1), expected_version=0))

        with pytest.raises(VersionConflictError) as exc_info:
            asyncio.run(storage.append_state(month_state(1), expected_version=0))
        assert exc_info.value.expected_version == 0
        assert exc_info.value.actual_version == 1
        assert asyncio.run(storage.get_current_version("2025-01")) == 1

    def test_version_gap_rejected(self):
        storage = InMemoryMonthStateStorage()
        with pytest.raises(StorageError):
            asyncio.run(storage.append_state(month_state(3), expected_version=0))

    def test_months_are_independent(self):
        storage = InMemoryMonthStateStorage()
        asyncio.run(storage.append_state(month_state(1, month_id="2025-01"), expected_version=0))
        asyncio.run(storage.append_state(month_state(1, month_id="2025-02"), expected_version=0))
        assert asyncio.run(storage.get_current_version("2025-02")) == 1


class TestInMemoryPlanningInputs:

    def test_missing_income_raises(self):
        inputs = InMemoryPlanningInputs(incomes={"2025-01": 1000})
        assert asyncio.run(inputs.get_monthly_income("2025-01")) == 1000
        with pytest.raises(NotFoundError):
            asyncio.run(inputs.get_monthly_income("2025-02"))

    def test_only_active_goals_listed(self):
        inputs = InMemoryPlanningInputs(goals=[
            Goal(id="g1", name="A", target_amount=10),
            Goal(id="g2", name="B", target_amount=10, status=GoalStatus.CANCELLED),
        ])
        goals = asyncio.run(inputs.list_active_goals())
        assert [g.id for g in goals] == ["g1"]


class TestInMemoryAuditStorage:

    def test_query_by_correlation_and_entity(self):
        storage = InMemoryAuditStorage()
        correlation_id = uuid4()

        async def scenario():
            await storage.append_event(AuditEventBuilder.dss_initialized("2025-01", 1, 1, 1, correlation_id))
            await storage.append_event(AuditEventBuilder.workflow_reset("2025-01", correlation_id))
            await storage.append_event(AuditEventBuilder.workflow_reset("2025-02", uuid4()))
            return (
                await storage.get_events_by_correlation_id(correlation_id),
                await storage.get_events_by_entity("month", "2025-02"),
                await storage.get_recent_events(limit=2),
            )

        by_correlation, by_entity, recent = asyncio.run(scenario())
        assert len(by_correlation) == 2
        assert by_correlation[0].event_type == AuditEventType.DSS_INITIALIZED
        assert len(by_entity) == 1
        assert len(recent) == 2


class TestGoogleSheetsMonthStateStorage:
    """Tests for the Sheets backend against a fake worksheet."""

    def test_round_trip(self):
        client = FakeSheetsClient()
        storage = GoogleSheetsMonthStateStorage(client)
        state = month_state(1)

        asyncio.run(storage.append_state(state, expected_version=0))
        loaded = asyncio.run(storage.get_latest_state("2025-01"))

        assert loaded == state
        row = client.month_states.rows[1]
        assert row[0] == "2025-01"
        assert row[1] == "1"

    def test_version_tracks_rows(self):
        storage = GoogleSheetsMonthStateStorage(FakeSheetsClient())

        async def scenario():
            await storage.append_state(month_state(1), expected_version=0)
            await storage.append_state(month_state(2), expected_version=1)
            await storage.append_state(month_state(1, month_id="2025-02"), expected_version=0)
            return (
                await storage.get_current_version("2025-01"),
                await storage.get_current_version("2025-02"),
                await storage.list_versions("2025-01"),
            )

        current_jan, current_feb, versions = asyncio.run(scenario())
        assert current_jan == 2
        assert current_feb == 1
        assert [v.version for v in versions] == [1, 2]

    def test_conflict_not_retried(self):
        client = FakeSheetsClient()
        storage = GoogleSheetsMonthStateStorage(client)
        asyncio.run(storage.append_state(month_state(1), expected_version=0))

        with pytest.raises(VersionConflictError):
            asyncio.run(storage.append_state(month_state(1), expected_version=0))
        assert len(client.month_states.rows) == 2


class TestGoogleSheetsAuditStorage:

    def test_events_round_trip(self):
        storage = GoogleSheetsAuditStorage(FakeSheetsClient())
        correlation_id = uuid4()
        event = AuditEventBuilder.stage_applied(
            "2025-01", "debt_strategy", {"selected_strategy": "avalanche"}, correlation_id
        )

        assert asyncio.run(storage.append_event(event)) is True
        events = asyncio.run(storage.get_events_by_correlation_id(correlation_id))

        assert len(events) == 1
        assert events[0].event_id == event.event_id
        assert events[0].details["selection"] == {"selected_strategy": "avalanche"}
        assert events[0].is_user_action is True

    def test_unreadable_rows_skipped(self):
        client = FakeSheetsClient()
        client.audit.rows.append(["not-a-uuid", "yesterday", "bogus"])
        storage = GoogleSheetsAuditStorage(client)
        assert asyncio.run(storage.get_recent_events()) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
