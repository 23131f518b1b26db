"""Per-user reminder manager: ties storage, scheduling and delivery together."""
from __future__ import annotations

from datetime import datetime, tzinfo
import logging
from typing import Any

import pytz

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import CALLBACK_TYPE, Event, HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.helpers.event import async_track_time_change
from homeassistant.util import dt as dt_util

from .const import (
    CHANNEL_PUSH, CHANNEL_VOICE, COLLECTION_CONTACTS, COLLECTION_INTAKE,
    COLLECTION_MEDICINES, CONF_CARETAKER_NOTIFY, CONF_EARLY_MINUTES,
    CONF_FREQUENCY, CONF_LANGUAGE, CONF_MEDIA_PLAYER, CONF_TIME_SLOTS, CONF_NOTIFY_SERVICE, CONF_PATIENT,
    CONF_SNOOZE_MINUTES, CONF_TTS_ENTITY, CONF_TTS_RATE_OPTION,
    CONF_TZ_SENSOR, CONF_VOICE_ENABLED, DAILY_CHECK_HOUR,
    DEFAULT_EARLY_MINUTES, DEFAULT_LANGUAGE, DEFAULT_SNOOZE_MINUTES,
    EVENT_NOTIFICATION_ACTION, EXPIRY_WARNING_DAYS, HISTORY_LENGTH,
    LOW_STOCK_DAYS, SIGNAL_MEDICINE_ADDED, SIGNAL_MEDICINE_REMOVED,
    SIGNAL_UPDATED, TIMING_NOW,
)
from .models import (
    CONTACT_SCHEMA, MEDICINE_KEYS, EmergencyContact, Medicine, Reminder, new_id,
    parse_action, validate_medicine,
)
from .notifications import NotificationDispatcher
from .response import MedicineNotFound, ResponseHandler
from .scheduler import ReminderScheduler, compute_next_fire_time
from .store import DocumentStore
from .voice import VoiceAnnouncer

_LOGGER = logging.getLogger(__name__)


class ReminderManager:
    """Everything MediRemind runs for one elderly user (one config entry)."""

    def __init__(self, hass: HomeAssistant, entry: ConfigEntry, store: DocumentStore) -> None:
        self.hass = hass
        self.entry_id = entry.entry_id
        self.store = store
        self.user_id: str = entry.data[CONF_PATIENT]

        settings = {**entry.data, **entry.options}
        self.language = settings.get(CONF_LANGUAGE, DEFAULT_LANGUAGE)
        self.early_minutes = settings.get(CONF_EARLY_MINUTES, DEFAULT_EARLY_MINUTES)
        self._tz_sensor = settings.get(CONF_TZ_SENSOR)

        self.voice: VoiceAnnouncer | None = None
        if settings.get(CONF_VOICE_ENABLED):
            self.voice = VoiceAnnouncer(
                hass,
                settings.get(CONF_TTS_ENTITY),
                settings.get(CONF_MEDIA_PLAYER),
                self.language,
                settings.get(CONF_TTS_RATE_OPTION),
            )
        self.channels = (CHANNEL_PUSH, CHANNEL_VOICE) if self.voice else (CHANNEL_PUSH,)

        self.dispatcher = NotificationDispatcher(
            hass,
            settings.get(CONF_NOTIFY_SERVICE),
            settings.get(CONF_CARETAKER_NOTIFY),
            self.early_minutes,
            settings.get(CONF_SNOOZE_MINUTES, DEFAULT_SNOOZE_MINUTES),
            self.voice,
        )
        self.scheduler = ReminderScheduler(hass, self._async_on_fire)
        self.responses = ResponseHandler(
            hass,
            self.entry_id,
            store,
            self.scheduler,
            self.ensure_armed,
            settings.get(CONF_SNOOZE_MINUTES, DEFAULT_SNOOZE_MINUTES),
            self.channels,
            self.voice,
            clock=self.now,
        )
        self._unsubs: list[CALLBACK_TYPE] = []

    @property
    def demo_mode(self) -> bool:
        return self.store.demo_mode

    def get_timezone(self) -> tzinfo:
        """Phone time zone when a sensor is configured, else Home Assistant's."""
        if self._tz_sensor:
            tz_state = self.hass.states.get(self._tz_sensor)
            if tz_state and tz_state.state not in ("unknown", "unavailable"):
                try:
                    return pytz.timezone(tz_state.state)
                except pytz.UnknownTimeZoneError:
                    _LOGGER.warning("Unknown time zone %s from %s", tz_state.state, self._tz_sensor)
        return dt_util.DEFAULT_TIME_ZONE

    def now(self) -> datetime:
        return dt_util.now(time_zone=self.get_timezone())

    async def async_start(self) -> None:
        """Arm the next dose of every medicine and start listening."""
        for medicine in await self.async_medicines():
            self.ensure_armed(medicine)

        self._unsubs.append(async_track_time_change(
            self.hass, self._async_daily_check, hour=DAILY_CHECK_HOUR, minute=0, second=0
        ))
        self._unsubs.append(self.hass.bus.async_listen(
            EVENT_NOTIFICATION_ACTION, self._async_handle_notification_action
        ))
        _LOGGER.debug(
            "Started reminders for %s (%d pending)", self.user_id, len(self.scheduler.pending())
        )

    @callback
    def async_stop(self) -> None:
        while self._unsubs:
            self._unsubs.pop()()
        self.scheduler.async_shutdown()

    async def async_medicines(self) -> list[Medicine]:
        documents = await self.store.async_query(
            COLLECTION_MEDICINES, elderly_user_id=self.user_id
        )
        return [Medicine.from_dict(document) for document in documents]

    async def async_contacts(self) -> list[EmergencyContact]:
        documents = await self.store.async_query(COLLECTION_CONTACTS, user_id=self.user_id)
        contacts = [EmergencyContact.from_dict(document) for document in documents]
        return sorted(contacts, key=lambda c: (not c.is_primary, c.name))

    async def async_history(self, medicine_id: str) -> list[dict[str, Any]]:
        """Latest intake records for a medicine, oldest first."""
        records = await self.store.async_query(COLLECTION_INTAKE, medicine_id=medicine_id)
        records.sort(key=lambda record: record["timestamp"])
        return records[-HISTORY_LENGTH:]

    @callback
    def ensure_armed(self, medicine: Medicine, after: datetime | None = None) -> None:
        """Make sure the dose following ``after`` (or now) has its reminders."""
        if not medicine.time_slots:
            return

        now = self.now()
        base = max(after, now) if after else now
        for reminder in self.scheduler.pending(medicine.id):
            if not reminder.snoozed and reminder.occurrence > (after or now):
                return

        fire_time = compute_next_fire_time(
            medicine.time_slots, base.astimezone(self.get_timezone()), medicine.days
        )
        if fire_time is None:
            return
        self.scheduler.schedule_fire(
            medicine.id, fire_time, now, self.early_minutes, self.channels
        )

    async def _async_on_fire(self, reminder: Reminder) -> None:
        document = await self.store.async_get(COLLECTION_MEDICINES, reminder.medicine_id)
        if document is None:
            _LOGGER.debug("Medicine %s was removed, dropping reminder", reminder.medicine_id)
            self.scheduler.discard(reminder.reminder_id)
            return

        medicine = Medicine.from_dict(document)
        self.scheduler.expire_before(medicine.id, reminder.occurrence)
        minutes_left = round((reminder.occurrence - reminder.fire_time).total_seconds() / 60)
        try:
            sent = await self.dispatcher.async_dispatch(
                medicine,
                reminder.timing,
                reminder.reminder_id,
                speak=CHANNEL_VOICE in reminder.channels,
                minutes_left=minutes_left,
            )
            if not sent:
                self.scheduler.discard(reminder.reminder_id)
        finally:
            if reminder.timing == TIMING_NOW and not reminder.snoozed:
                self.ensure_armed(medicine, reminder.occurrence)
            async_dispatcher_send(self.hass, SIGNAL_UPDATED.format(self.entry_id), medicine.id)

    async def _async_handle_notification_action(self, event: Event) -> None:
        action = parse_action(event.data.get("action"), self.responses.snooze_minutes)
        if action is None:
            return
        if await self.store.async_get(COLLECTION_MEDICINES, action.medicine_id) is None:
            return
        _LOGGER.debug("Notification action %s", action)
        await self.responses.async_handle_action(action)

    async def _async_daily_check(self, now: datetime) -> None:
        """Warn about medicines that expire soon or are running out."""
        today = now.date()
        for medicine in await self.async_medicines():
            if (medicine.expiry_date - today).days <= EXPIRY_WARNING_DAYS:
                await self.dispatcher.async_send_expiry_warning(medicine, today)
            if medicine.stock_days <= LOW_STOCK_DAYS:
                await self.dispatcher.async_send_stock_warning(medicine)
                if self.voice:
                    await self.voice.async_speak_stock_reminder(medicine)

    async def async_add_medicine(self, data: dict[str, Any]) -> Medicine:
        validated = validate_medicine(data, today=self.now().date())
        medicine = Medicine.create(validated, self.user_id)
        await self.store.async_set(COLLECTION_MEDICINES, medicine.id, medicine.as_dict())
        _LOGGER.info("Added medicine %s for %s", medicine.name, self.user_id)
        self.ensure_armed(medicine)
        async_dispatcher_send(self.hass, SIGNAL_MEDICINE_ADDED.format(self.entry_id), medicine)
        return medicine

    async def async_update_medicine(self, medicine_id: str, data: dict[str, Any]) -> Medicine:
        existing = await self.responses.async_get_medicine(medicine_id)
        current = {
            key: value for key, value in existing.as_dict().items() if key in MEDICINE_KEYS
        }
        if data.get(CONF_FREQUENCY, existing.frequency) != existing.frequency:
            current.pop(CONF_TIME_SLOTS)
        validated = validate_medicine({**current, **data}, existing=existing)
        medicine = existing.updated(validated)
        await self.store.async_set(COLLECTION_MEDICINES, medicine.id, medicine.as_dict())
        # New slots or days, so the armed doses no longer apply
        self.scheduler.cancel_medicine(medicine.id)
        self.ensure_armed(medicine)
        async_dispatcher_send(self.hass, SIGNAL_UPDATED.format(self.entry_id), medicine.id)
        return medicine

    async def async_remove_medicine(self, medicine_id: str) -> None:
        if not await self.store.async_delete(COLLECTION_MEDICINES, medicine_id):
            raise MedicineNotFound(f"Unknown medicine: {medicine_id}")
        self.scheduler.cancel_medicine(medicine_id)
        _LOGGER.info("Removed medicine %s for %s", medicine_id, self.user_id)
        async_dispatcher_send(
            self.hass, SIGNAL_MEDICINE_REMOVED.format(self.entry_id), medicine_id
        )

    async def async_add_contact(self, data: dict[str, Any]) -> EmergencyContact:
        validated = CONTACT_SCHEMA(data)
        contact = EmergencyContact.from_dict(
            {**validated, "id": new_id(), "user_id": self.user_id}
        )
        await self.store.async_set(COLLECTION_CONTACTS, contact.id, contact.as_dict())
        return contact

    async def async_remove_contact(self, contact_id: str) -> bool:
        return await self.store.async_delete(COLLECTION_CONTACTS, contact_id)
