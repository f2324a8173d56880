"""Tests for progress entries: deltas, conversion and temporal validation."""

from datetime import timedelta

import pytest

from pageturn.errors import NotFoundError, TemporalConflictError, ValidationError
from pageturn.models import Book
from pageturn.services.collaborators import SqlBookLookup
from pageturn.services.ledger import ProgressLedger, calculate_page, calculate_percentage, pages_read_since

from tests.conftest import TODAY

D1 = TODAY - timedelta(days=2)
D2 = TODAY - timedelta(days=1)
D3 = TODAY


async def _reading(services, ctx, book):
    result = await services.sessions.update_status(ctx, book.id, "reading")
    return result.session


@pytest.mark.asyncio
async def test_pages_read_is_delta_from_previous_entry(services, ctx, book):
    s = await _reading(services, ctx, book)
    first = await services.ledger.append_entry(ctx, s.id, current_page=100, progress_date=D1)
    second = await services.ledger.append_entry(ctx, s.id, current_page=150, progress_date=D2)
    assert first.pages_read == 100
    assert second.pages_read == 50
    assert second.current_percentage == 50.0


@pytest.mark.asyncio
async def test_same_day_entries_chain_in_insertion_order(services, ctx, book):
    s = await _reading(services, ctx, book)
    await services.ledger.append_entry(ctx, s.id, current_page=20, progress_date=D3)
    later = await services.ledger.append_entry(ctx, s.id, current_page=45, progress_date=D3)
    assert later.pages_read == 25


@pytest.mark.asyncio
async def test_progress_date_defaults_to_today_in_context_timezone(services, ctx, book):
    s = await _reading(services, ctx, book)
    entry = await services.ledger.append_entry(ctx, s.id, current_page=10)
    assert entry.progress_date == TODAY


@pytest.mark.asyncio
async def test_percentage_only_derives_page(services, ctx, book):
    s = await _reading(services, ctx, book)
    entry = await services.ledger.append_entry(ctx, s.id, current_percentage=25, progress_date=D1)
    assert entry.current_page == 75
    assert entry.current_percentage == 25


@pytest.mark.asyncio
async def test_percentage_is_clamped(services, ctx, book):
    s = await _reading(services, ctx, book)
    entry = await services.ledger.append_entry(ctx, s.id, current_percentage=140, progress_date=D1)
    assert entry.current_percentage == 100
    assert entry.current_page == 300


@pytest.mark.asyncio
async def test_conversion_without_total_pages_is_rejected(services, session, ctx):
    book = Book(id=42, title="Untitled", author="Anon")
    session.add(book)
    await session.flush()
    s = await _reading(services, ctx, book)

    with pytest.raises(ValidationError) as exc_info:
        await services.ledger.append_entry(ctx, s.id, current_page=10)
    assert exc_info.value.code == "PAGES_REQUIRED"
    with pytest.raises(ValidationError) as exc_info:
        await services.ledger.append_entry(ctx, s.id, current_percentage=10)
    assert exc_info.value.code == "PAGES_REQUIRED"

    # Both values supplied: nothing to derive
    entry = await services.ledger.append_entry(ctx, s.id, current_page=10, current_percentage=5)
    assert entry.pages_read == 10


@pytest.mark.asyncio
async def test_position_is_required(services, ctx, book):
    s = await _reading(services, ctx, book)
    with pytest.raises(ValidationError, match="current_page or current_percentage"):
        await services.ledger.append_entry(ctx, s.id, progress_date=D1)


@pytest.mark.asyncio
async def test_lower_value_after_earlier_entry_conflicts(services, ctx, book):
    s = await _reading(services, ctx, book)
    earlier = await services.ledger.append_entry(ctx, s.id, current_page=100, progress_date=D1)
    with pytest.raises(TemporalConflictError) as exc_info:
        await services.ledger.append_entry(ctx, s.id, current_page=80, progress_date=D2)
    conflict = exc_info.value.conflicting_entry
    assert conflict["id"] == earlier.id
    assert conflict["type"] == "before"
    assert conflict["date"] == D1.isoformat()
    assert exc_info.value.code == "TEMPORAL_CONFLICT"


@pytest.mark.asyncio
async def test_backdated_value_above_later_entry_conflicts(services, ctx, book):
    s = await _reading(services, ctx, book)
    await services.ledger.append_entry(ctx, s.id, current_page=100, progress_date=D1)
    later = await services.ledger.append_entry(ctx, s.id, current_page=200, progress_date=D3)
    with pytest.raises(TemporalConflictError) as exc_info:
        await services.ledger.append_entry(ctx, s.id, current_page=250, progress_date=D2)
    assert exc_info.value.conflicting_entry["id"] == later.id
    assert exc_info.value.conflicting_entry["type"] == "after"

    backfill = await services.ledger.append_entry(ctx, s.id, current_page=150, progress_date=D2)
    assert backfill.pages_read == 50


@pytest.mark.asyncio
async def test_percentage_entries_validate_by_percentage(services, ctx, book):
    s = await _reading(services, ctx, book)
    await services.ledger.append_entry(ctx, s.id, current_percentage=40, progress_date=D1)
    with pytest.raises(TemporalConflictError, match="40%"):
        await services.ledger.append_entry(ctx, s.id, current_percentage=30, progress_date=D2)


@pytest.mark.asyncio
async def test_append_requires_active_session(services, ctx, book):
    s = await _reading(services, ctx, book)
    await services.sessions.mark_as_dnf(ctx, book.id)
    with pytest.raises(ValidationError, match="No active reading session"):
        await services.ledger.append_entry(ctx, s.id, current_page=10)


@pytest.mark.asyncio
async def test_public_logging_requires_reading_status(services, ctx, book):
    result = await services.sessions.update_status(ctx, book.id, "to-read")
    with pytest.raises(ValidationError, match="'reading' status"):
        await services.ledger.append_entry(ctx, result.session.id, current_page=10, require_reading=True)


@pytest.mark.asyncio
async def test_append_unknown_session(services, ctx):
    with pytest.raises(NotFoundError):
        await services.ledger.append_entry(ctx, 12345, current_page=1)


# --- edit ---

@pytest.mark.asyncio
async def test_edit_recomputes_only_edited_entry(services, ctx, book):
    s = await _reading(services, ctx, book)
    await services.ledger.append_entry(ctx, s.id, current_page=100, progress_date=D1)
    middle = await services.ledger.append_entry(ctx, s.id, current_page=150, progress_date=D2)
    last = await services.ledger.append_entry(ctx, s.id, current_page=200, progress_date=D3)

    edited = await services.ledger.edit_entry(ctx, middle.id, {"current_page": 170})
    assert edited.pages_read == 70
    assert last.pages_read == 50  # sibling left as-is


@pytest.mark.asyncio
async def test_edit_out_of_order_is_rejected(services, ctx, book):
    s = await _reading(services, ctx, book)
    first = await services.ledger.append_entry(ctx, s.id, current_page=100, progress_date=D1)
    second = await services.ledger.append_entry(ctx, s.id, current_page=150, progress_date=D2)

    with pytest.raises(TemporalConflictError) as exc_info:
        await services.ledger.edit_entry(ctx, first.id, {"current_page": 180})
    assert exc_info.value.conflicting_entry["id"] == second.id

    with pytest.raises(TemporalConflictError):
        await services.ledger.edit_entry(ctx, second.id, {"progress_date": (D1 - timedelta(days=1)).isoformat()})


@pytest.mark.asyncio
async def test_edit_moving_date_recomputes_against_new_previous(services, ctx, book):
    s = await _reading(services, ctx, book)
    await services.ledger.append_entry(ctx, s.id, current_page=100, progress_date=D1 - timedelta(days=5))
    mover = await services.ledger.append_entry(ctx, s.id, current_page=130, progress_date=D1)
    await services.ledger.append_entry(ctx, s.id, current_page=160, progress_date=D3)

    edited = await services.ledger.edit_entry(ctx, mover.id, {"progress_date": D2, "notes": "train"})
    assert edited.progress_date == D2
    assert edited.pages_read == 30
    assert edited.notes == "train"


@pytest.mark.asyncio
async def test_edit_rejects_unknown_fields(services, ctx, book):
    s = await _reading(services, ctx, book)
    entry = await services.ledger.append_entry(ctx, s.id, current_page=10, progress_date=D1)
    with pytest.raises(ValidationError, match="Unknown fields"):
        await services.ledger.edit_entry(ctx, entry.id, {"pages_read": 999})


@pytest.mark.asyncio
async def test_archived_entries_are_immutable(services, ctx, book):
    s = await _reading(services, ctx, book)
    entry = await services.ledger.append_entry(ctx, s.id, current_page=10, progress_date=D1)
    await services.sessions.mark_as_dnf(ctx, book.id)

    with pytest.raises(ValidationError, match="archived"):
        await services.ledger.edit_entry(ctx, entry.id, {"current_page": 20})
    with pytest.raises(ValidationError, match="archived"):
        await services.ledger.delete_entry(ctx, entry.id)


# --- delete and chain recompute ---

@pytest.mark.asyncio
async def test_delete_leaves_neighbours_until_recompute(services, ctx, book):
    s = await _reading(services, ctx, book)
    await services.ledger.append_entry(ctx, s.id, current_page=100, progress_date=D1)
    middle = await services.ledger.append_entry(ctx, s.id, current_page=150, progress_date=D2)
    last = await services.ledger.append_entry(ctx, s.id, current_page=200, progress_date=D3)

    await services.ledger.delete_entry(ctx, middle.id)
    assert last.pages_read == 50

    changed = await services.ledger.recompute_session_chain(s.id)
    assert changed == 1
    assert last.pages_read == 100
    assert await services.ledger.recompute_session_chain(s.id) == 0


@pytest.mark.asyncio
async def test_cascading_ledger_recomputes_chain(services, session, clock, ctx, book):
    s = await _reading(services, ctx, book)
    cascading = ProgressLedger(session, SqlBookLookup(session), clock, cascade=True)
    await cascading.append_entry(ctx, s.id, current_page=100, progress_date=D1)
    middle = await cascading.append_entry(ctx, s.id, current_page=150, progress_date=D2)
    last = await cascading.append_entry(ctx, s.id, current_page=200, progress_date=D3)

    await cascading.edit_entry(ctx, middle.id, {"current_page": 120})
    assert last.pages_read == 80

    await cascading.delete_entry(ctx, middle.id)
    assert last.pages_read == 100


@pytest.mark.asyncio
async def test_delete_unknown_entry(services, ctx):
    with pytest.raises(NotFoundError):
        await services.ledger.delete_entry(ctx, 999)


# --- reads ---

@pytest.mark.asyncio
async def test_latest_and_all_for_session(services, ctx, book):
    s = await _reading(services, ctx, book)
    await services.ledger.append_entry(ctx, s.id, current_page=100, progress_date=D1)
    await services.ledger.append_entry(ctx, s.id, current_page=150, progress_date=D3)
    await services.ledger.append_entry(ctx, s.id, current_page=120, progress_date=D2)

    entries = await services.ledger.all_for_session(s.id)
    assert [e.progress_date for e in entries] == [D1, D2, D3]
    latest = await services.ledger.latest_for_session(s.id)
    assert latest.current_page == 150


@pytest.mark.asyncio
async def test_aggregates(services, ctx, book):
    s = await _reading(services, ctx, book)
    await services.ledger.append_entry(ctx, s.id, current_page=30, progress_date=D1)
    await services.ledger.append_entry(ctx, s.id, current_page=40, progress_date=D1)
    await services.ledger.append_entry(ctx, s.id, current_page=60, progress_date=D3)

    calendar = await services.ledger.activity_calendar(ctx, D1, D3)
    assert calendar == {D1: 40, D3: 20}
    assert await services.ledger.total_pages_read_in_range(ctx, D1, D3) == 60
    assert await services.ledger.total_pages_read_in_range(ctx, D2, D3) == 20
    assert await services.ledger.average_pages_per_day(ctx, D1) == 30
    assert await services.ledger.earliest_progress_date(ctx) == D1


@pytest.mark.asyncio
async def test_range_instants_are_bucketed_in_context_timezone(services, clock, ctx, book):
    s = await _reading(services, ctx, book)
    await services.ledger.append_entry(ctx, s.id, current_page=30, progress_date=D2)
    start = clock.local_date_to_storage_boundary(D2, ctx.timezone)
    end = clock.local_date_to_storage_boundary(D2, ctx.timezone)
    assert await services.ledger.total_pages_read_in_range(ctx, start, end) == 30


def test_pages_read_never_negative():
    class Prev:
        current_page = 120

    assert pages_read_since(100, Prev()) == 0
    assert pages_read_since(0, None) == 0


def test_conversions():
    assert calculate_percentage(150, 300) == 50.0
    assert calculate_percentage(400, 300) == 100.0
    assert calculate_page(33.3, 300) == 100
    assert calculate_page(100, 300) == 300
