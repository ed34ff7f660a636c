import random
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from mneme.application.queue_builder import (
    build_review_queue,
    fuzzy_score,
    next_due_time,
    partition,
    select_cards,
    sort_for_review,
)
from mneme.domain.models import CardRecord
from mneme.domain.scheduler import initial_state

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def card(card_id, next_in=None, ef=2.5, active=True, note="notes/a.md", title=None, content=""):
    state = initial_state(NOW - timedelta(days=1))
    state = replace(
        state,
        ef=ef,
        active=active,
        next_review_date=NOW + next_in if next_in is not None else None,
    )
    return CardRecord(
        card_id=card_id,
        state=state,
        created_at=NOW - timedelta(days=10),
        note_path=note,
        title=title,
        content=content,
    )


@pytest.fixture
def records():
    return [
        card("due-old", next_in=timedelta(days=-2), ef=2.5),
        card("due-now", next_in=timedelta(0), ef=2.0),
        card("due-hard", next_in=timedelta(days=-2), ef=1.4, note="notes/b.md"),
        card("later", next_in=timedelta(hours=3)),
        card("much-later", next_in=timedelta(days=9), note="notes/b.md"),
        card("stopped", next_in=None, active=False),
        card("unscheduled", next_in=None),
    ]


def ids(cards):
    return [c.card_id for c in cards]


def test_partition(records):
    due, scheduled = partition(records, NOW)

    assert set(ids(due)) == {"due-old", "due-now", "due-hard"}
    assert set(ids(scheduled)) == {"later", "much-later"}
    assert not set(ids(due)) & set(ids(scheduled))


def test_due_ordering_by_date_then_ef(records):
    due = select_cards(records, "due", NOW)
    assert ids(due) == ["due-hard", "due-old", "due-now"]


def test_scheduled_mode(records):
    assert ids(select_cards(records, "scheduled", NOW)) == ["later", "much-later"]


def test_note_mode_ignores_schedule(records):
    cards = select_cards(records, "note", NOW, note_path="notes/a.md")
    # Unscheduled cards sort first
    assert ids(cards)[:2] == ["stopped", "unscheduled"]
    assert set(ids(cards)) == {"due-old", "due-now", "later", "stopped", "unscheduled"}


def test_note_mode_without_note(records):
    assert select_cards(records, "note", NOW) == []


def test_unknown_mode(records):
    with pytest.raises(ValueError):
        select_cards(records, "everything", NOW)


def test_tag_filter(records):
    tags = {"notes/a.md": ["bio"], "notes/b.md": "chem"}
    cards = select_cards(records, "due", NOW, tag="chem", tags_for_note=tags.get)
    assert ids(cards) == ["due-hard"]

    all_cards = select_cards(records, "due", NOW, tag="all", tags_for_note=tags.get)
    assert len(all_cards) == 3


def test_tag_filter_without_lookup_excludes_everything(records):
    assert select_cards(records, "due", NOW, tag="bio") == []


def test_search_filter():
    records = [
        card("c1", next_in=timedelta(days=-1), title="Mitochondria", content="Powerhouse of the cell"),
        card("c2", next_in=timedelta(days=-1), title="Photosynthesis", content="Light reactions"),
    ]
    assert ids(select_cards(records, "due", NOW, search="mitochondira")) == ["c1"]
    assert ids(select_cards(records, "due", NOW, search="light")) == ["c2"]
    assert ids(select_cards(records, "due", NOW, search="   ")) == ["c1", "c2"]


def test_fuzzy_score():
    assert fuzzy_score("cell", "Powerhouse of the cell") == 1.0
    assert fuzzy_score("xyz", None) == 0.0
    assert fuzzy_score("", "anything") == 0.0
    assert fuzzy_score("krebs cycel", "the krebs cycle") > 0.8


def test_randomize_keeps_set(records):
    ordered = select_cards(records, "due", NOW)
    shuffled = select_cards(records, "due", NOW, randomize=True, rng=random.Random(3))
    assert sorted(ids(shuffled)) == sorted(ids(ordered))


def test_sort_for_review_ties_on_ef():
    a = card("a", next_in=timedelta(hours=1), ef=2.1)
    b = card("b", next_in=timedelta(hours=1), ef=1.9)
    assert ids(sort_for_review([a, b])) == ["b", "a"]


def test_build_review_queue_prefers_due(records):
    result = build_review_queue(records, NOW)
    assert result.fell_back is False
    assert ids(result.cards) == ["due-hard", "due-old", "due-now"]


def test_build_review_queue_falls_back_to_scheduled():
    records = [card("later", next_in=timedelta(hours=1)), card("off", active=False)]
    result = build_review_queue(records, NOW)
    assert result.fell_back is True
    assert ids(result.cards) == ["later"]


def test_build_review_queue_empty():
    result = build_review_queue([card("off", active=False)], NOW)
    assert result.empty
    assert result.fell_back is False


def test_next_due_time(records):
    assert next_due_time(records, NOW) == NOW + timedelta(hours=3)
    assert next_due_time([], NOW) is None
