from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from editrelay.adapters import open_buffer
from editrelay.errors import StorageFault
from editrelay.models import Activity

BASE = datetime(2026, 1, 8, 12, 0, tzinfo=timezone.utc)


def _activity(minutes: int = 0, **overrides) -> Activity:
    fields = {
        "started_at": BASE + timedelta(minutes=minutes),
        "ended_at": BASE + timedelta(minutes=minutes + 1),
        "project": "blast",
        "git_remote": "git@github.com:taigrr/blast.git",
        "filetype": "go",
        "editor": "neovim",
        "machine": "test",
    }
    fields.update(overrides)
    return Activity(**fields)


def test_append_assigns_increasing_ids_and_client_ids(buffer):
    first = buffer.append(_activity(0))
    second = buffer.append(_activity(1))

    assert second > first
    stored = buffer.unconsumed(10)
    assert [a.id for a in stored] == [first, second]
    assert all(a.client_id for a in stored)
    assert stored[0].client_id != stored[1].client_id
    assert stored[0].created_at is not None
    assert stored[0].synced is False


def test_append_keeps_client_supplied_token(buffer):
    buffer.append(_activity(0, client_id="token-123"))

    assert buffer.unconsumed(1)[0].client_id == "token-123"


def test_round_trips_all_fields(buffer):
    offset = timezone(timedelta(hours=2))
    activity = _activity(
        0,
        started_at=datetime(2026, 1, 8, 14, 0, 30, tzinfo=offset),
        ended_at=datetime(2026, 1, 8, 14, 5, tzinfo=offset),
        filename="main.go",
        lines_added=10,
        lines_removed=5,
        git_branch="main",
        actions_per_minute=45.5,
        words_per_minute=60.2,
    )
    buffer.append(activity)

    stored = buffer.unconsumed(1)[0]
    assert stored.started_at == activity.started_at
    assert stored.started_at.tzinfo is not None
    assert stored.ended_at == activity.ended_at
    assert stored.filename == "main.go"
    assert stored.lines_added == 10
    assert stored.lines_removed == 5
    assert stored.git_branch == "main"
    assert stored.actions_per_minute == 45.5
    assert stored.words_per_minute == 60.2
    assert stored.machine == "test"


def test_unconsumed_orders_by_start_then_id(buffer):
    late = buffer.append(_activity(10))
    tie_a = buffer.append(_activity(5))
    early = buffer.append(_activity(-3))
    tie_b = buffer.append(_activity(5))

    assert [a.id for a in buffer.unconsumed(10)] == [early, tie_a, tie_b, late]


def test_unconsumed_orders_across_offsets(buffer):
    plus_five = timezone(timedelta(hours=5))
    # 13:00+05:00 is 08:00 UTC, earlier than BASE.
    earlier = buffer.append(
        _activity(
            0,
            started_at=datetime(2026, 1, 8, 13, 0, tzinfo=plus_five),
            ended_at=datetime(2026, 1, 8, 13, 1, tzinfo=plus_five),
        )
    )
    later = buffer.append(_activity(0))
    buffer_order = [a.id for a in buffer.unconsumed(10)]

    assert buffer_order == [earlier, later]


def test_unconsumed_respects_limit(buffer):
    for i in range(5):
        buffer.append(_activity(i))

    assert len(buffer.unconsumed(3)) == 3
    assert buffer.unconsumed(0) == []


def test_unconsumed_empty_buffer_returns_empty_list(buffer):
    assert list(buffer.unconsumed(100)) == []


def test_mark_consumed_hides_activities(buffer):
    ids = [buffer.append(_activity(i)) for i in range(3)]

    buffer.mark_consumed(ids[:2])

    remaining = buffer.unconsumed(10)
    assert [a.id for a in remaining] == [ids[2]]
    assert buffer.count_unconsumed() == 1


def test_mark_consumed_empty_is_noop(buffer):
    buffer.append(_activity(0))

    buffer.mark_consumed([])

    assert buffer.count_unconsumed() == 1


def test_mark_consumed_is_all_or_nothing(buffer):
    ids = [buffer.append(_activity(i)) for i in range(2)]

    with pytest.raises(StorageFault):
        buffer.mark_consumed([ids[0], 9999, ids[1]])

    assert [a.id for a in buffer.unconsumed(10)] == ids


def test_mark_consumed_twice_is_allowed(buffer):
    activity_id = buffer.append(_activity(0))

    buffer.mark_consumed([activity_id])
    buffer.mark_consumed([activity_id])

    assert buffer.count_unconsumed() == 0


def test_ids_are_not_reused_after_consumption(buffer):
    first = buffer.append(_activity(0))
    buffer.mark_consumed([first])

    second = buffer.append(_activity(1))

    assert second > first


def test_survives_reopen(tmp_path):
    path = tmp_path / "nested" / "relay.db"
    buf = open_buffer(path)
    kept = buf.append(_activity(0))
    done = buf.append(_activity(1))
    buf.mark_consumed([done])
    buf.close()

    reopened = open_buffer(path)
    try:
        assert [a.id for a in reopened.unconsumed(10)] == [kept]
    finally:
        reopened.close()


def test_storage_errors_are_wrapped(buffer):
    with buffer.engine.begin() as conn:
        conn.execute(text("DROP TABLE activities"))

    with pytest.raises(StorageFault):
        buffer.append(_activity(0))
    with pytest.raises(StorageFault):
        buffer.unconsumed(10)


def test_out_of_range_counts_are_storage_faults(buffer):
    with pytest.raises(StorageFault):
        buffer.append(_activity(0, lines_added=10**23))

    assert buffer.unconsumed(10) == []


def test_corrupt_stored_timestamp_is_a_storage_fault(buffer):
    buffer.append(_activity(0))
    with buffer.engine.begin() as conn:
        conn.execute(text("UPDATE activities SET started_at = 'not a time'"))

    with pytest.raises(StorageFault, match="decode stored activity"):
        buffer.unconsumed(10)
