"""Reminder scheduling for MediRemind."""
from __future__ import annotations

from collections.abc import Callable, Coroutine, Iterable
from datetime import date, datetime, time, timedelta
import heapq
import itertools
import logging
from typing import Any

from dateutil import rrule

from homeassistant.core import CALLBACK_TYPE, HomeAssistant, callback
from homeassistant.helpers.event import async_track_point_in_time
from homeassistant.util import dt as dt_util

from .const import (
    CHANNEL_PUSH, DEFAULT_EARLY_MINUTES, DOMAIN, TIMING_EARLY, TIMING_NOW,
    WEEKDAYS,
)
from .models import Reminder, ReminderStatus, new_id

_LOGGER = logging.getLogger(__name__)

WEEKDAY_MAP = {
    "mon": rrule.MO, "tue": rrule.TU, "wed": rrule.WE,
    "thu": rrule.TH, "fri": rrule.FR, "sat": rrule.SA,
    "sun": rrule.SU
}

OnFire = Callable[[Reminder], Coroutine[Any, Any, None]]


def parse_slot(slot: str) -> time:
    return datetime.strptime(slot, "%H:%M").time()


def _at(day: datetime, slot: time) -> datetime:
    return day.replace(hour=slot.hour, minute=slot.minute, second=0, microsecond=0)


def compute_next_fire_time(
    time_slots: Iterable[str], now: datetime, days: Iterable[str] | None = None
) -> datetime | None:
    """Return the next dose instant strictly after ``now``.

    Slots are local "HH:MM" times. The first slot still ahead today wins;
    otherwise the earliest slot on the next scheduled day. Medicines without
    slots (as-needed) have no next fire time.
    """
    slots = sorted(parse_slot(slot) for slot in time_slots)
    if not slots:
        return None

    days = list(days or [])
    if not days or WEEKDAYS[now.weekday()] in days:
        for slot in slots:
            candidate = _at(now, slot)
            if candidate > now:
                return candidate

    tomorrow = _at(now + timedelta(days=1), time(0, 0))
    if not days:
        return _at(tomorrow, slots[0])

    rule = rrule.rrule(
        rrule.DAILY,
        byweekday=[WEEKDAY_MAP[d] for d in days],
        dtstart=tomorrow,
    )
    return _at(rule.after(tomorrow, inc=True), slots[0])


def previous_scheduled_day(days: Iterable[str] | None, day: date) -> date:
    """Return the scheduled day before ``day`` (yesterday for daily medicines)."""
    days = list(days or [])
    if not days:
        return day - timedelta(days=1)

    midnight = datetime.combine(day, time(0, 0))
    rule = rrule.rrule(
        rrule.DAILY,
        byweekday=[WEEKDAY_MAP[d] for d in days],
        dtstart=midnight - timedelta(days=7),
    )
    return rule.before(midnight).date()


class ReminderScheduler:
    """Single queue of pending reminders for one elderly user.

    Reminders are kept in an arena keyed by id and ordered in a heap by fire
    time. Only the earliest pending reminder holds a timer; cancelled entries
    are dropped when they reach the head of the queue.
    """

    def __init__(self, hass: HomeAssistant, on_fire: OnFire) -> None:
        self.hass = hass
        self._on_fire = on_fire
        self._reminders: dict[str, Reminder] = {}
        self._queue: list[tuple[datetime, int, str]] = []
        self._seq = itertools.count()
        self._unsub_timer: CALLBACK_TYPE | None = None
        self._armed_for: datetime | None = None

    @callback
    def schedule_fire(
        self,
        medicine_id: str,
        fire_time: datetime,
        now: datetime | None = None,
        early_minutes: int = DEFAULT_EARLY_MINUTES,
        channels: tuple[str, ...] = (CHANNEL_PUSH,),
    ) -> list[Reminder]:
        """Arm the heads-up and due-now reminders for one dose."""
        now = now or dt_util.now()
        reminders = []

        if fire_time <= now:
            reminders.append(self._push(Reminder(
                new_id(), medicine_id, now, fire_time, TIMING_NOW, channels
            )))
        else:
            if early_minutes > 0:
                early_time = max(fire_time - timedelta(minutes=early_minutes), now)
                reminders.append(self._push(Reminder(
                    new_id(), medicine_id, early_time, fire_time, TIMING_EARLY, channels
                )))
            reminders.append(self._push(Reminder(
                new_id(), medicine_id, fire_time, fire_time, TIMING_NOW, channels
            )))

        self._arm()
        return reminders

    @callback
    def schedule_snooze(
        self,
        medicine_id: str,
        occurrence: datetime,
        minutes: int,
        now: datetime | None = None,
        channels: tuple[str, ...] = (CHANNEL_PUSH,),
    ) -> Reminder:
        """Arm one re-delivery of a dose ``minutes`` from now."""
        now = now or dt_util.now()
        reminder = self._push(Reminder(
            new_id(), medicine_id, now + timedelta(minutes=minutes), occurrence,
            TIMING_NOW, channels, snoozed=True,
        ))
        self._arm()
        return reminder

    def get(self, reminder_id: str) -> Reminder | None:
        return self._reminders.get(reminder_id)

    def pending(self, medicine_id: str | None = None) -> list[Reminder]:
        """Pending reminders in firing order."""
        return sorted(
            (
                r for r in self._reminders.values()
                if r.is_pending and (medicine_id is None or r.medicine_id == medicine_id)
            ),
            key=lambda r: r.fire_time,
        )

    def delivered(self, medicine_id: str) -> list[Reminder]:
        return sorted(
            (
                r for r in self._reminders.values()
                if r.status is ReminderStatus.DELIVERED and r.medicine_id == medicine_id
            ),
            key=lambda r: r.fire_time,
        )

    @callback
    def discard(self, reminder_id: str) -> None:
        """Forget a reminder that can no longer be answered."""
        self._reminders.pop(reminder_id, None)

    @callback
    def cancel(self, reminder_id: str) -> bool:
        reminder = self._reminders.get(reminder_id)
        if reminder is None or not reminder.is_pending:
            return False
        reminder.status = ReminderStatus.CANCELLED
        del self._reminders[reminder_id]
        self._arm()
        return True

    @callback
    def cancel_medicine(self, medicine_id: str, occurrence: datetime | None = None) -> int:
        """Cancel the pending reminders of a medicine, or of one of its doses."""
        cancelled = 0
        for reminder in list(self._reminders.values()):
            if reminder.medicine_id != medicine_id:
                continue
            if occurrence is not None and reminder.occurrence != occurrence:
                continue
            if reminder.is_pending:
                reminder.status = ReminderStatus.CANCELLED
                cancelled += 1
            del self._reminders[reminder.reminder_id]
        self._arm()
        return cancelled

    @callback
    def close_occurrence(
        self, medicine_id: str, occurrence: datetime, status: ReminderStatus
    ) -> list[Reminder]:
        """Finish every reminder of one dose once the user has answered.

        Delivered reminders take ``status``; pending ones are cancelled so
        the same dose is not announced again.
        """
        closed = []
        for reminder in list(self._reminders.values()):
            if reminder.medicine_id != medicine_id or reminder.occurrence != occurrence:
                continue
            if reminder.is_pending:
                reminder.status = ReminderStatus.CANCELLED
            elif reminder.status is ReminderStatus.DELIVERED:
                reminder.status = status
            del self._reminders[reminder.reminder_id]
            closed.append(reminder)
        self._arm()
        return closed

    @callback
    def expire_before(self, medicine_id: str, occurrence: datetime) -> list[Reminder]:
        """Expire delivered reminders of earlier doses that were never answered."""
        expired = []
        for reminder in list(self._reminders.values()):
            if (
                reminder.medicine_id == medicine_id
                and reminder.status is ReminderStatus.DELIVERED
                and reminder.occurrence < occurrence
            ):
                reminder.status = ReminderStatus.EXPIRED
                del self._reminders[reminder.reminder_id]
                expired.append(reminder)
        return expired

    @callback
    def async_shutdown(self) -> None:
        """Drop every reminder and the armed timer."""
        if self._unsub_timer:
            self._unsub_timer()
            self._unsub_timer = None
        self._armed_for = None
        self._reminders.clear()
        self._queue.clear()

    def _push(self, reminder: Reminder) -> Reminder:
        self._reminders[reminder.reminder_id] = reminder
        heapq.heappush(
            self._queue, (reminder.fire_time, next(self._seq), reminder.reminder_id)
        )
        return reminder

    def _is_live(self, reminder_id: str) -> bool:
        reminder = self._reminders.get(reminder_id)
        return reminder is not None and reminder.is_pending

    @callback
    def _arm(self) -> None:
        """Point the timer at the earliest pending reminder."""
        while self._queue and not self._is_live(self._queue[0][2]):
            heapq.heappop(self._queue)

        if not self._queue:
            if self._unsub_timer:
                self._unsub_timer()
                self._unsub_timer = None
            self._armed_for = None
            return

        head = self._queue[0][0]
        if self._unsub_timer and self._armed_for == head:
            return
        if self._unsub_timer:
            self._unsub_timer()
        self._armed_for = head
        self._unsub_timer = async_track_point_in_time(self.hass, self._handle_timer, head)

    @callback
    def _handle_timer(self, point: datetime) -> None:
        self._unsub_timer = None
        self._armed_for = None

        due = []
        while self._queue and self._queue[0][0] <= point:
            _, _, reminder_id = heapq.heappop(self._queue)
            if self._is_live(reminder_id):
                reminder = self._reminders[reminder_id]
                reminder.status = ReminderStatus.DELIVERED
                due.append(reminder)

        for reminder in due:
            _LOGGER.debug(
                "Firing %s reminder %s for medicine %s",
                reminder.timing, reminder.reminder_id, reminder.medicine_id,
            )
            self.hass.async_create_task(
                self._on_fire(reminder), f"{DOMAIN} reminder {reminder.reminder_id}"
            )
        self._arm()
