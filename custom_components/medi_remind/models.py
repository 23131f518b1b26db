"""Data model for MediRemind: medicines, contacts, reminders and actions."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
import re
from typing import Any
import uuid

import voluptuous as vol

from homeassistant.util import dt as dt_util

from .const import (
    ACTION_ACKNOWLEDGE, ACTION_PREFIX, ACTION_REPLACE, ACTION_SKIP,
    ACTION_SNOOZE, ACTION_TAKEN,
    CHANNEL_PUSH, CONF_DOSAGE, CONF_EMAIL, CONF_EXPIRY_DATE, CONF_FOOD_TIMING,
    CONF_FREQUENCY, CONF_INSTRUCTIONS, CONF_NAME, CONF_PHONE, CONF_PRIMARY,
    CONF_RELATIONSHIP, CONF_SCHEDULE_DAYS, CONF_STOCK_DAYS, CONF_TIME_SLOTS,
    DEFAULT_SNOOZE_MINUTES, DEFAULT_STOCK_DAYS, FOOD_ANYTIME, FOOD_TIMINGS,
    FREQ_WEEKLY, FREQUENCY_SLOTS, TIMING_NOW, WEEKDAYS,
)

TIME_SLOT_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
ACTION_RE = re.compile(
    rf"^{ACTION_PREFIX}:(?P<action>[a-z]+):(?P<medicine_id>[0-9a-f]+):(?P<reminder_id>[0-9a-f]*)$"
)


def new_id() -> str:
    """Return an opaque document id."""
    return uuid.uuid4().hex


class MedicineValidationError(vol.Invalid):
    """A medicine document broke one of its invariants."""


def time_slot(value: Any) -> str:
    """Validate a single "HH:MM" slot, accepting "HH:MM:SS" from time selectors."""
    value = str(value).strip()
    if len(value) == 8 and value.endswith(":00"):
        value = value[:5]
    if not TIME_SLOT_RE.match(value):
        raise vol.Invalid(f"invalid time slot: {value}")
    return value


def unique_slots(value: list[str]) -> list[str]:
    if len(set(value)) != len(value):
        raise vol.Invalid("time slots must be unique")
    return value


def non_blank(value: Any) -> str:
    value = str(value).strip()
    if not value:
        raise vol.Invalid("value must not be blank")
    return value


def iso_date(value: Any) -> str:
    if isinstance(value, date):
        return value.isoformat()
    parsed = dt_util.parse_date(str(value))
    if parsed is None:
        raise vol.Invalid(f"invalid date: {value}")
    return parsed.isoformat()


MEDICINE_FIELDS = {
    vol.Required(CONF_NAME): non_blank,
    vol.Optional(CONF_DOSAGE, default=""): str,
    vol.Required(CONF_FREQUENCY): vol.In(list(FREQUENCY_SLOTS)),
    vol.Optional(CONF_TIME_SLOTS): vol.Any(None, vol.All([time_slot], unique_slots)),
    vol.Optional(CONF_SCHEDULE_DAYS, default=list): [vol.In(WEEKDAYS)],
    vol.Optional(CONF_STOCK_DAYS, default=DEFAULT_STOCK_DAYS): vol.All(
        vol.Coerce(int), vol.Range(min=0)
    ),
    vol.Required(CONF_EXPIRY_DATE): iso_date,
    vol.Optional(CONF_FOOD_TIMING, default=FOOD_ANYTIME): vol.In(FOOD_TIMINGS),
    vol.Optional(CONF_INSTRUCTIONS, default=""): str,
}

MEDICINE_SCHEMA = vol.Schema(MEDICINE_FIELDS)
MEDICINE_KEYS = [str(key) for key in MEDICINE_FIELDS]

CONTACT_SCHEMA = vol.Schema({
    vol.Required(CONF_NAME): non_blank,
    vol.Optional(CONF_RELATIONSHIP, default=""): str,
    vol.Required(CONF_PHONE): vol.All(str, vol.Match(r"^\+?[0-9 \-]{6,20}$")),
    vol.Optional(CONF_EMAIL): vol.Any(None, vol.Email()),
    vol.Optional(CONF_PRIMARY, default=False): bool,
})


def validate_medicine(
    data: dict[str, Any],
    today: date | None = None,
    existing: Medicine | None = None,
) -> dict[str, Any]:
    """Validate form or service input for a medicine.

    Fills in the frequency's default slots when none are given, enforces the
    canonical slot count and checks the expiry date: new medicines may not
    already be expired, existing ones may not change their expiry date.
    """
    data = MEDICINE_SCHEMA(data)
    frequency = data[CONF_FREQUENCY]
    canonical = FREQUENCY_SLOTS[frequency]

    slots = data.get(CONF_TIME_SLOTS)
    if slots is None:
        slots = list(canonical or [])
    if canonical is not None and len(slots) != len(canonical):
        raise MedicineValidationError(
            f"{frequency} needs {len(canonical)} time slot(s), got {len(slots)}",
            path=[CONF_TIME_SLOTS],
        )
    data[CONF_TIME_SLOTS] = slots

    if frequency == FREQ_WEEKLY and not data[CONF_SCHEDULE_DAYS]:
        raise MedicineValidationError(
            "weekly medicines need at least one day", path=[CONF_SCHEDULE_DAYS]
        )

    if existing is not None:
        if data[CONF_EXPIRY_DATE] != existing.expiry_date.isoformat():
            raise MedicineValidationError(
                "expiry date cannot be changed", path=[CONF_EXPIRY_DATE]
            )
    else:
        today = today or dt_util.now().date()
        if date.fromisoformat(data[CONF_EXPIRY_DATE]) < today:
            raise MedicineValidationError(
                "expiry date is in the past", path=[CONF_EXPIRY_DATE]
            )
    return data


@dataclass
class Medicine:
    """One prescribed medicine and its schedule."""

    id: str
    name: str
    dosage: str
    frequency: str
    time_slots: list[str]
    expiry_date: date
    elderly_user_id: str
    days: list[str] = field(default_factory=list)
    stock_days: int = DEFAULT_STOCK_DAYS
    food_timing: str = FOOD_ANYTIME
    instructions: str = ""
    adherence_streak: int = 0
    last_taken: datetime | None = None

    @classmethod
    def create(cls, data: dict[str, Any], user_id: str) -> Medicine:
        """Build a new medicine from validated input."""
        return cls.from_dict({**data, "id": new_id(), "elderly_user_id": user_id})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Medicine:
        last_taken = data.get("last_taken")
        return cls(
            id=data["id"],
            name=data[CONF_NAME],
            dosage=data.get(CONF_DOSAGE, ""),
            frequency=data[CONF_FREQUENCY],
            time_slots=list(data.get(CONF_TIME_SLOTS) or []),
            expiry_date=date.fromisoformat(data[CONF_EXPIRY_DATE]),
            elderly_user_id=data["elderly_user_id"],
            days=list(data.get(CONF_SCHEDULE_DAYS) or []),
            stock_days=int(data.get(CONF_STOCK_DAYS, DEFAULT_STOCK_DAYS)),
            food_timing=data.get(CONF_FOOD_TIMING, FOOD_ANYTIME),
            instructions=data.get(CONF_INSTRUCTIONS, ""),
            adherence_streak=int(data.get("adherence_streak", 0)),
            last_taken=dt_util.parse_datetime(last_taken) if last_taken else None,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            CONF_NAME: self.name,
            CONF_DOSAGE: self.dosage,
            CONF_FREQUENCY: self.frequency,
            CONF_TIME_SLOTS: list(self.time_slots),
            CONF_SCHEDULE_DAYS: list(self.days),
            CONF_STOCK_DAYS: self.stock_days,
            CONF_EXPIRY_DATE: self.expiry_date.isoformat(),
            CONF_FOOD_TIMING: self.food_timing,
            CONF_INSTRUCTIONS: self.instructions,
            "elderly_user_id": self.elderly_user_id,
            "adherence_streak": self.adherence_streak,
            "last_taken": self.last_taken.isoformat() if self.last_taken else None,
        }

    def updated(self, data: dict[str, Any]) -> Medicine:
        """Return a copy with the user-editable fields replaced."""
        return replace(
            self,
            name=data[CONF_NAME],
            dosage=data[CONF_DOSAGE],
            frequency=data[CONF_FREQUENCY],
            time_slots=list(data[CONF_TIME_SLOTS]),
            days=list(data[CONF_SCHEDULE_DAYS]),
            stock_days=data[CONF_STOCK_DAYS],
            food_timing=data[CONF_FOOD_TIMING],
            instructions=data[CONF_INSTRUCTIONS],
        )


@dataclass
class EmergencyContact:
    id: str
    name: str
    phone_number: str
    user_id: str
    relationship: str = ""
    email: str | None = None
    is_primary: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmergencyContact:
        return cls(
            id=data["id"],
            name=data[CONF_NAME],
            phone_number=data[CONF_PHONE],
            user_id=data["user_id"],
            relationship=data.get(CONF_RELATIONSHIP, ""),
            email=data.get(CONF_EMAIL),
            is_primary=bool(data.get(CONF_PRIMARY, False)),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            CONF_NAME: self.name,
            CONF_PHONE: self.phone_number,
            "user_id": self.user_id,
            CONF_RELATIONSHIP: self.relationship,
            CONF_EMAIL: self.email,
            CONF_PRIMARY: self.is_primary,
        }


class ReminderStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    TAKEN = "taken"
    SKIPPED = "skipped"
    SNOOZED = "snoozed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


@dataclass
class Reminder:
    """One scheduled firing of a notification. Lives in memory only."""

    reminder_id: str
    medicine_id: str
    fire_time: datetime
    occurrence: datetime
    timing: str = TIMING_NOW
    channels: tuple[str, ...] = (CHANNEL_PUSH,)
    status: ReminderStatus = ReminderStatus.PENDING
    snoozed: bool = False

    @property
    def is_pending(self) -> bool:
        return self.status is ReminderStatus.PENDING


@dataclass(frozen=True)
class Taken:
    medicine_id: str
    reminder_id: str | None = None


@dataclass(frozen=True)
class Snoozed:
    medicine_id: str
    minutes: int = DEFAULT_SNOOZE_MINUTES
    reminder_id: str | None = None


@dataclass(frozen=True)
class Skipped:
    medicine_id: str
    reminder_id: str | None = None


@dataclass(frozen=True)
class Acknowledged:
    """Expiry warning seen."""

    medicine_id: str


@dataclass(frozen=True)
class ReplaceRequested:
    """Replacement of an expiring medicine requested from the warning."""

    medicine_id: str


ReminderAction = Taken | Snoozed | Skipped | Acknowledged | ReplaceRequested


def action_id(action: str, medicine_id: str, reminder_id: str | None) -> str:
    """Encode a notification action identifier."""
    return f"{ACTION_PREFIX}:{action}:{medicine_id}:{reminder_id or ''}"


def parse_action(
    value: Any, snooze_minutes: int = DEFAULT_SNOOZE_MINUTES
) -> ReminderAction | None:
    """Decode a notification action identifier, or None if it is not ours."""
    if not isinstance(value, str):
        return None
    match = ACTION_RE.match(value)
    if match is None:
        return None

    medicine_id = match["medicine_id"]
    reminder_id = match["reminder_id"] or None
    action = match["action"]
    if action == ACTION_TAKEN:
        return Taken(medicine_id, reminder_id)
    if action == ACTION_SNOOZE:
        return Snoozed(medicine_id, snooze_minutes, reminder_id)
    if action == ACTION_SKIP:
        return Skipped(medicine_id, reminder_id)
    if action == ACTION_ACKNOWLEDGE:
        return Acknowledged(medicine_id)
    if action == ACTION_REPLACE:
        return ReplaceRequested(medicine_id)
    return None
