from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from mneme.application.stats.metrics_calculator import (
    MetricsCalculator,
    ef_class,
    format_review_date,
)
from mneme.application.stats.service import StatsService
from mneme.domain.models import CardRecord
from mneme.domain.scheduler import initial_state, transition

NOW = datetime(2024, 3, 10, 15, 30, tzinfo=timezone.utc)


@pytest.fixture
def calculator():
    return MetricsCalculator()


@pytest.fixture
def mock_repo():
    return AsyncMock()


def make_record(card_id="c1", state=None):
    return CardRecord(
        card_id=card_id,
        state=state or initial_state(NOW - timedelta(days=5)),
        created_at=NOW - timedelta(days=5),
        note_path="notes/x.md",
        content="Q",
    )


def test_ef_class():
    assert ef_class(2.5) == "high"
    assert ef_class(2.49) == "medium"
    assert ef_class(1.8) == "medium"
    assert ef_class(1.79) == "low"


def test_format_review_date():
    assert format_review_date(NOW.replace(hour=9, minute=5), NOW) == "Today 09:05"
    assert format_review_date(NOW + timedelta(days=1), NOW) == "Tomorrow 15:30"
    assert format_review_date(NOW + timedelta(days=3), NOW) == "13-03-2024 15:30"
    assert format_review_date(NOW - timedelta(days=1), NOW) == "09-03-2024 15:30"


def test_format_review_date_uses_reference_timezone():
    tz = timezone(timedelta(hours=2))
    local_now = NOW.astimezone(tz)  # 17:30 local
    assert format_review_date(NOW, local_now) == "Today 17:30"


def test_summary_counts_history(calculator):
    state = initial_state(NOW - timedelta(days=5))
    for i, q in enumerate([2, 1, 4, 5]):
        state = transition(state, q, NOW - timedelta(days=4 - i))

    summary = calculator.summarize(make_record(state=state), NOW)

    assert summary.reviews == 4
    assert summary.lapses == 2
    assert summary.average_rating == 3.0
    assert summary.repetition == 2
    assert summary.ef_class == "high"


def test_summary_label_scheduled(calculator):
    state = replace(initial_state(NOW), next_review_date=NOW + timedelta(days=1))
    summary = calculator.summarize(make_record(state=state), NOW)
    assert summary.is_due is False
    assert summary.schedule_label == "Next: Tomorrow 15:30"


def test_summary_label_due(calculator):
    state = replace(
        initial_state(NOW - timedelta(hours=2)),
        next_review_date=NOW - timedelta(hours=1),
    )
    summary = calculator.summarize(make_record(state=state), NOW)
    assert summary.is_due is True
    assert summary.schedule_label == "Last: Today 13:30"


def test_summary_unreviewed(calculator):
    summary = calculator.summarize(make_record(), NOW)
    assert summary.average_rating is None
    assert summary.schedule_label is None
    assert summary.is_due is False


@pytest.mark.asyncio
async def test_collection_stats(mock_repo):
    learning = transition(initial_state(NOW - timedelta(hours=1)), 1, NOW - timedelta(hours=1))
    scheduled = replace(initial_state(NOW), next_review_date=NOW + timedelta(days=2), ef=1.5)
    stopped = transition(scheduled, 0, NOW, stop=True)

    mock_repo.list_records.return_value = [
        make_record("a", learning),
        make_record("b", scheduled),
        make_record("c", stopped),
        make_record("d"),
    ]
    stats = await StatsService(store=mock_repo).collection_stats(NOW)

    assert stats.total == 4
    assert stats.due == 1
    assert stats.scheduled == 1
    assert stats.stopped == 1
    assert stats.learning == 1
    assert stats.by_ef_class == {"high": 2, "low": 2}
    assert stats.mean_ef == 2.0
    mock_repo.list_records.assert_awaited_once()


@pytest.mark.asyncio
async def test_collection_stats_empty(mock_repo):
    mock_repo.list_records.return_value = []
    stats = await StatsService(store=mock_repo).collection_stats(NOW)
    assert stats.total == 0
    assert stats.mean_ef is None
