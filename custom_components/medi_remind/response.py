"""Handling of the user's answer to a delivered reminder."""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
import logging
from typing import Any

from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.util import dt as dt_util

from .const import (
    ACTION_SKIP, ACTION_SNOOZE, ACTION_TAKEN, CHANNEL_PUSH, COLLECTION_INTAKE,
    COLLECTION_MEDICINES, DEFAULT_SNOOZE_MINUTES, EVENT_MEDICINE_SKIPPED,
    EVENT_MEDICINE_SNOOZED, EVENT_MEDICINE_TAKEN, EVENT_REPLACEMENT_REQUESTED,
    SIGNAL_UPDATED,
)
from .models import (
    Acknowledged, Medicine, Reminder, ReminderAction, ReminderStatus,
    ReplaceRequested, Skipped, Snoozed, Taken, new_id,
)
from .scheduler import ReminderScheduler, previous_scheduled_day
from .store import DocumentStore
from .voice import VoiceAnnouncer

_LOGGER = logging.getLogger(__name__)

Rearm = Callable[[Medicine, datetime], None]


class MedicineNotFound(HomeAssistantError):
    """No medicine with the given id exists for this user."""


class ResponseHandler:
    """Applies taken / skipped / snoozed answers to medicines."""

    def __init__(
        self,
        hass: HomeAssistant,
        entry_id: str,
        store: DocumentStore,
        scheduler: ReminderScheduler,
        rearm: Rearm | None = None,
        snooze_minutes: int = DEFAULT_SNOOZE_MINUTES,
        channels: tuple[str, ...] = (CHANNEL_PUSH,),
        voice: VoiceAnnouncer | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """``clock`` gives the user's local time; days are counted in it."""
        self.hass = hass
        self._clock = clock or dt_util.now
        self.entry_id = entry_id
        self.store = store
        self.scheduler = scheduler
        self.snooze_minutes = snooze_minutes
        self.channels = channels
        self._rearm = rearm
        self._voice = voice

    async def async_handle_action(self, action: ReminderAction) -> None:
        if isinstance(action, Taken):
            await self.async_on_taken(action.medicine_id, action.reminder_id)
        elif isinstance(action, Snoozed):
            await self.async_on_snoozed(action.medicine_id, action.minutes, action.reminder_id)
        elif isinstance(action, Skipped):
            await self.async_on_skipped(action.medicine_id, action.reminder_id)
        elif isinstance(action, Acknowledged):
            _LOGGER.info("Expiry warning for %s acknowledged", action.medicine_id)
        elif isinstance(action, ReplaceRequested):
            medicine = await self.async_get_medicine(action.medicine_id)
            _LOGGER.info("Replacement requested for %s", medicine.name)
            self.hass.bus.async_fire(EVENT_REPLACEMENT_REQUESTED, {
                "medicine_id": medicine.id,
                "name": medicine.name,
                "dosage": medicine.dosage,
                "expiry_date": medicine.expiry_date.isoformat(),
            })

    async def async_on_taken(
        self,
        medicine_id: str,
        reminder_id: str | None = None,
        now: datetime | None = None,
    ) -> Medicine:
        """Record a dose as taken and update the adherence streak.

        The streak grows when the previous dose was taken on the previous
        scheduled day, stays put for further doses on the same day and
        restarts at 1 after a gap. The first dose of a day uses up one day
        of stock.
        """
        now = now or self._clock()
        medicine = await self.async_get_medicine(medicine_id)
        occurrence = self._occurrence(medicine_id, reminder_id)

        today = now.date()
        previous = (
            medicine.last_taken.astimezone(now.tzinfo).date()
            if medicine.last_taken else None
        )
        if previous is None:
            streak = 1
        elif previous == today:
            streak = max(medicine.adherence_streak, 1)
        elif previous == previous_scheduled_day(medicine.days, today):
            streak = medicine.adherence_streak + 1
        else:
            streak = 1

        if previous != today:
            medicine.stock_days = max(0, medicine.stock_days - 1)
        grew = streak > medicine.adherence_streak
        medicine.adherence_streak = streak
        medicine.last_taken = now

        await self.store.async_set(COLLECTION_MEDICINES, medicine.id, medicine.as_dict())
        await self._async_record(medicine, ACTION_TAKEN, now, occurrence)
        self._close(medicine, occurrence, ReminderStatus.TAKEN)
        self._broadcast(EVENT_MEDICINE_TAKEN, medicine, now, adherence_streak=streak)

        if self._voice and grew and streak % 7 == 0:
            await self._voice.async_speak_adherence(streak)
        return medicine

    async def async_on_skipped(
        self,
        medicine_id: str,
        reminder_id: str | None = None,
        now: datetime | None = None,
    ) -> Medicine:
        """Record a skipped dose. Streak and last-taken time are left alone."""
        now = now or self._clock()
        medicine = await self.async_get_medicine(medicine_id)
        occurrence = self._occurrence(medicine_id, reminder_id)

        await self._async_record(medicine, ACTION_SKIP, now, occurrence)
        self._close(medicine, occurrence, ReminderStatus.SKIPPED)
        self._broadcast(EVENT_MEDICINE_SKIPPED, medicine, now)
        return medicine

    async def async_on_snoozed(
        self,
        medicine_id: str,
        minutes: int | None = None,
        reminder_id: str | None = None,
        now: datetime | None = None,
    ) -> Reminder:
        """Push the dose back by ``minutes``, replacing any earlier snooze."""
        minutes = minutes or self.snooze_minutes
        now = now or self._clock()
        medicine = await self.async_get_medicine(medicine_id)
        occurrence = self._occurrence(medicine_id, reminder_id) or now

        self.scheduler.close_occurrence(medicine.id, occurrence, ReminderStatus.SNOOZED)
        reminder = self.scheduler.schedule_snooze(
            medicine.id, occurrence, minutes, now, self.channels
        )
        if self._rearm:
            self._rearm(medicine, occurrence)

        await self._async_record(medicine, ACTION_SNOOZE, now, occurrence)
        self._broadcast(
            EVENT_MEDICINE_SNOOZED, medicine, now,
            snooze_minutes=minutes, fire_time=reminder.fire_time.isoformat(),
        )
        return reminder

    async def async_reset_streak(self, medicine_id: str) -> Medicine:
        """Clear the adherence streak and the intake history of a medicine."""
        medicine = await self.async_get_medicine(medicine_id)
        medicine.adherence_streak = 0
        await self.store.async_set(COLLECTION_MEDICINES, medicine.id, medicine.as_dict())
        for record in await self.store.async_query(COLLECTION_INTAKE, medicine_id=medicine.id):
            await self.store.async_delete(COLLECTION_INTAKE, record["id"])
        async_dispatcher_send(self.hass, SIGNAL_UPDATED.format(self.entry_id), medicine.id)
        return medicine

    async def async_get_medicine(self, medicine_id: str) -> Medicine:
        document = await self.store.async_get(COLLECTION_MEDICINES, medicine_id)
        if document is None:
            raise MedicineNotFound(f"Unknown medicine: {medicine_id}")
        return Medicine.from_dict(document)

    def _occurrence(self, medicine_id: str, reminder_id: str | None) -> datetime | None:
        """Dose the answer refers to.

        The given reminder's dose, else the oldest delivered one, else the
        dose waiting on a snooze.
        """
        if reminder_id:
            reminder = self.scheduler.get(reminder_id)
            if reminder is not None and reminder.medicine_id == medicine_id:
                return reminder.occurrence
        delivered = self.scheduler.delivered(medicine_id)
        if delivered:
            return delivered[0].occurrence
        snoozed = [r for r in self.scheduler.pending(medicine_id) if r.snoozed]
        if snoozed:
            return snoozed[0].occurrence
        return None

    @callback
    def _close(
        self, medicine: Medicine, occurrence: datetime | None, status: ReminderStatus
    ) -> None:
        if occurrence is None:
            return
        self.scheduler.close_occurrence(medicine.id, occurrence, status)
        if self._rearm:
            self._rearm(medicine, occurrence)

    async def _async_record(
        self,
        medicine: Medicine,
        action: str,
        now: datetime,
        occurrence: datetime | None,
    ) -> None:
        record_id = new_id()
        await self.store.async_set(COLLECTION_INTAKE, record_id, {
            "id": record_id,
            "medicine_id": medicine.id,
            "action": action,
            "timestamp": now.isoformat(),
            "scheduled_for": occurrence.isoformat() if occurrence else None,
        })

    @callback
    def _broadcast(
        self, event_type: str, medicine: Medicine, now: datetime, **extra: Any
    ) -> None:
        """Tell open sessions about the answer."""
        self.hass.bus.async_fire(event_type, {
            "medicine_id": medicine.id,
            "name": medicine.name,
            "timestamp": now.isoformat(),
            **extra,
        })
        async_dispatcher_send(self.hass, SIGNAL_UPDATED.format(self.entry_id), medicine.id)
