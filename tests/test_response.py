"""Tests for taken / skipped / snoozed answers."""
from datetime import datetime, timedelta

import pytest

from homeassistant.core import HomeAssistant
from homeassistant.util import dt as dt_util

from custom_components.medi_remind.const import (
    COLLECTION_INTAKE, COLLECTION_MEDICINES, EVENT_MEDICINE_SKIPPED,
    EVENT_MEDICINE_TAKEN, EVENT_REPLACEMENT_REQUESTED,
)
from custom_components.medi_remind.models import (
    Acknowledged, ReminderStatus, ReplaceRequested, Snoozed, Taken,
)
from custom_components.medi_remind.response import MedicineNotFound, ResponseHandler
from custom_components.medi_remind.scheduler import ReminderScheduler
from custom_components.medi_remind.store import DocumentStore

from pytest_homeassistant_custom_component.common import async_capture_events


async def _ignore(reminder):
    pass


@pytest.fixture
async def handler(hass: HomeAssistant, medicine_doc):
    store = DocumentStore()
    await store.async_set(COLLECTION_MEDICINES, "a1", medicine_doc("a1"))
    await store.async_set(
        COLLECTION_MEDICINES, "b2", medicine_doc("b2", name="Atenolol", days=["mon", "thu"])
    )
    scheduler = ReminderScheduler(hass, _ignore)
    yield ResponseHandler(hass, "test_entry", store, scheduler)
    scheduler.async_shutdown()


def _at(day, hour=8, minute=5):
    # 2030-01-07 is a Monday
    return datetime(2030, 1, day, hour, minute, tzinfo=dt_util.UTC)


async def test_first_dose_starts_streak(hass: HomeAssistant, handler):
    events = async_capture_events(hass, EVENT_MEDICINE_TAKEN)

    medicine = await handler.async_on_taken("a1", now=_at(7))
    await hass.async_block_till_done()

    assert medicine.adherence_streak == 1
    assert medicine.last_taken == _at(7)
    assert medicine.stock_days == 29
    stored = await handler.store.async_get(COLLECTION_MEDICINES, "a1")
    assert stored["adherence_streak"] == 1
    assert len(events) == 1
    assert events[0].data["medicine_id"] == "a1"


async def test_streak_grows_on_consecutive_days(hass: HomeAssistant, handler):
    await handler.async_on_taken("a1", now=_at(7))
    await handler.async_on_taken("a1", now=_at(8))
    medicine = await handler.async_on_taken("a1", now=_at(9))

    assert medicine.adherence_streak == 3
    assert medicine.stock_days == 27


async def test_second_dose_same_day_keeps_streak(hass: HomeAssistant, handler):
    await handler.async_on_taken("a1", now=_at(7))
    await handler.async_on_taken("a1", now=_at(8))
    medicine = await handler.async_on_taken("a1", now=_at(8, hour=20))

    assert medicine.adherence_streak == 2
    assert medicine.stock_days == 28
    assert medicine.last_taken == _at(8, hour=20)


async def test_streak_restarts_after_gap(hass: HomeAssistant, handler):
    await handler.async_on_taken("a1", now=_at(7))
    await handler.async_on_taken("a1", now=_at(8))
    medicine = await handler.async_on_taken("a1", now=_at(10))

    assert medicine.adherence_streak == 1


async def test_streak_follows_schedule_days(hass: HomeAssistant, handler):
    """Monday and Thursday doses count as consecutive."""
    await handler.async_on_taken("b2", now=_at(7))
    medicine = await handler.async_on_taken("b2", now=_at(10))
    assert medicine.adherence_streak == 2

    # Missed Monday the 14th
    medicine = await handler.async_on_taken("b2", now=_at(17))
    assert medicine.adherence_streak == 1


async def test_skip_leaves_streak_alone(hass: HomeAssistant, handler):
    events = async_capture_events(hass, EVENT_MEDICINE_SKIPPED)
    taken = await handler.async_on_taken("a1", now=_at(7))

    skipped = await handler.async_on_skipped("a1", now=_at(7, hour=20))
    await hass.async_block_till_done()

    assert skipped.adherence_streak == taken.adherence_streak == 1
    assert skipped.last_taken == taken.last_taken
    assert skipped.stock_days == taken.stock_days
    actions = [
        record["action"]
        for record in await handler.store.async_query(COLLECTION_INTAKE, medicine_id="a1")
    ]
    assert sorted(actions) == ["skip", "taken"]
    assert len(events) == 1


async def test_taken_closes_every_reminder_of_the_dose(hass: HomeAssistant, handler):
    now = dt_util.utcnow()
    fire_time = now + timedelta(minutes=10)
    early, due = handler.scheduler.schedule_fire("a1", fire_time, now)
    early.status = ReminderStatus.DELIVERED

    await handler.async_on_taken("a1", early.reminder_id, now=now)

    assert early.status is ReminderStatus.TAKEN
    assert due.status is ReminderStatus.CANCELLED
    assert handler.scheduler.pending("a1") == []
    records = await handler.store.async_query(COLLECTION_INTAKE, medicine_id="a1")
    assert records[0]["scheduled_for"] == fire_time.isoformat()


async def test_snooze_arms_exactly_one_reminder(hass: HomeAssistant, handler):
    now = dt_util.utcnow()
    (due,) = handler.scheduler.schedule_fire("a1", now - timedelta(minutes=1), now)
    due.status = ReminderStatus.DELIVERED

    reminder = await handler.async_on_snoozed("a1", reminder_id=due.reminder_id, now=now)

    assert reminder.fire_time == now + timedelta(minutes=10)
    assert reminder.occurrence == due.occurrence
    assert due.status is ReminderStatus.SNOOZED
    assert handler.scheduler.pending("a1") == [reminder]

    # Snoozing again replaces the earlier snooze
    later = now + timedelta(minutes=3)
    again = await handler.async_on_snoozed("a1", 5, now=later)
    assert handler.scheduler.pending("a1") == [again]
    assert again.fire_time == later + timedelta(minutes=5)


async def test_actions_are_dispatched(hass: HomeAssistant, handler):
    await handler.async_handle_action(Taken("a1"))
    medicine = await handler.async_get_medicine("a1")
    assert medicine.adherence_streak == 1

    await handler.async_handle_action(Snoozed("b2", 15))
    (reminder,) = handler.scheduler.pending("b2")
    assert reminder.snoozed


async def test_reset_streak(hass: HomeAssistant, handler):
    await handler.async_on_taken("a1", now=_at(7))
    await handler.async_on_taken("a1", now=_at(8))

    medicine = await handler.async_reset_streak("a1")

    assert medicine.adherence_streak == 0
    assert await handler.store.async_query(COLLECTION_INTAKE, medicine_id="a1") == []


async def test_unknown_medicine(hass: HomeAssistant, handler):
    with pytest.raises(MedicineNotFound):
        await handler.async_on_taken("ffff")


async def test_skip_arms_nothing_for_the_dose(hass: HomeAssistant, handler):
    now = dt_util.utcnow()
    early, due = handler.scheduler.schedule_fire("a1", now + timedelta(minutes=10), now)
    early.status = ReminderStatus.DELIVERED

    medicine = await handler.async_on_skipped("a1", early.reminder_id, now=now)

    assert medicine.last_taken is None
    assert medicine.adherence_streak == 0
    assert early.status is ReminderStatus.SKIPPED
    assert due.status is ReminderStatus.CANCELLED
    assert handler.scheduler.pending("a1") == []


async def test_expiry_warning_actions(hass: HomeAssistant, handler):
    events = async_capture_events(hass, EVENT_REPLACEMENT_REQUESTED)

    await handler.async_handle_action(Acknowledged("a1"))
    await handler.async_handle_action(ReplaceRequested("a1"))
    await hass.async_block_till_done()

    assert len(events) == 1
    assert events[0].data["name"] == "Metformin"
    assert events[0].data["expiry_date"] == "2031-12-31"
    # Neither counts as a dose
    assert await handler.store.async_query(COLLECTION_INTAKE, medicine_id="a1") == []


async def test_days_follow_the_clock(hass: HomeAssistant, medicine_doc):
    """Doses are grouped by day in the clock's time zone."""
    store = DocumentStore()
    await store.async_set(COLLECTION_MEDICINES, "a1", medicine_doc("a1"))
    kolkata = dt_util.get_time_zone("Asia/Kolkata")
    instants = iter([
        datetime(2030, 1, 8, 5, 0, tzinfo=kolkata),
        datetime(2030, 1, 8, 20, 0, tzinfo=kolkata),
    ])
    scheduler = ReminderScheduler(hass, _ignore)
    handler = ResponseHandler(hass, "test_entry", store, scheduler, clock=lambda: next(instants))

    await handler.async_on_taken("a1")
    medicine = await handler.async_on_taken("a1")
    scheduler.async_shutdown()

    assert medicine.adherence_streak == 1
    assert medicine.stock_days == 29
