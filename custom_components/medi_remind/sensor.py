"""Platform for MediRemind sensor."""
from __future__ import annotations

from datetime import timedelta
import logging

from homeassistant.components.sensor import SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers import entity_registry as er
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import (
    COLLECTION_MEDICINES, DOMAIN, SIGNAL_MEDICINE_ADDED, SIGNAL_MEDICINE_REMOVED,
    SIGNAL_UPDATED, TIMING_NOW,
)
from .manager import ReminderManager
from .models import Medicine
from .scheduler import compute_next_fire_time

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up one sensor per medicine of the entry's user."""
    manager: ReminderManager = hass.data[DOMAIN][entry.entry_id]
    async_add_entities(
        MedicineSensor(manager, medicine) for medicine in await manager.async_medicines()
    )

    @callback
    def _async_add_medicine(medicine: Medicine) -> None:
        async_add_entities([MedicineSensor(manager, medicine)])

    entry.async_on_unload(async_dispatcher_connect(
        hass, SIGNAL_MEDICINE_ADDED.format(entry.entry_id), _async_add_medicine
    ))


class MedicineSensor(SensorEntity):
    """Next dose and adherence of one medicine."""

    _attr_should_poll = False

    def __init__(self, manager: ReminderManager, medicine: Medicine) -> None:
        """Initialize the sensor."""
        self._manager = manager
        self._medicine = medicine
        self._attr_unique_id = f"{manager.entry_id}_{medicine.id}"

        self._state = "Unknown"
        self._icon = "mdi:pill"
        self._next_due = None
        self._history: list[dict] = []

    @property
    def name(self):
        return self._medicine.name

    @property
    def native_value(self):
        return self._state

    @property
    def icon(self):
        return self._icon

    @property
    def extra_state_attributes(self):
        medicine = self._medicine
        attributes = {
            "medicine_id": medicine.id,
            "dosage": medicine.dosage,
            "frequency": medicine.frequency,
            "time_slots": medicine.time_slots,
            "schedule_days": medicine.days,
            "stock_days": medicine.stock_days,
            "expiry_date": medicine.expiry_date.isoformat(),
            "food_timing": medicine.food_timing,
            "instructions": medicine.instructions,
            "adherence_streak": medicine.adherence_streak,
            "patient_entity": medicine.elderly_user_id,
            "demo_mode": self._manager.demo_mode,
        }

        if medicine.last_taken:
            attributes["last_taken"] = medicine.last_taken.isoformat()

        if self._next_due:
            attributes["next_due"] = self._next_due.isoformat()

        if self._history:
            attributes["history"] = [
                {"action": record["action"], "timestamp": record["timestamp"]}
                for record in self._history
            ]

        return attributes

    async def async_added_to_hass(self):
        """Follow answers and fired reminders."""
        await super().async_added_to_hass()
        self.async_on_remove(async_dispatcher_connect(
            self.hass, SIGNAL_UPDATED.format(self._manager.entry_id), self._handle_update
        ))
        self.async_on_remove(async_dispatcher_connect(
            self.hass, SIGNAL_MEDICINE_REMOVED.format(self._manager.entry_id), self._handle_removed
        ))
        self._history = await self._manager.async_history(self._medicine.id)
        self._update_state()

    @callback
    def _handle_update(self, medicine_id: str) -> None:
        if medicine_id == self._medicine.id:
            self.async_schedule_update_ha_state(True)

    @callback
    def _handle_removed(self, medicine_id: str) -> None:
        if medicine_id != self._medicine.id:
            return
        if self.registry_entry is not None:
            # Removing the registry entry also removes the entity
            er.async_get(self.hass).async_remove(self.entity_id)
        else:
            self.hass.async_create_task(self.async_remove(force_remove=True))

    async def async_update(self) -> None:
        """Reload the medicine from storage."""
        document = await self._manager.store.async_get(COLLECTION_MEDICINES, self._medicine.id)
        if document is not None:
            self._medicine = Medicine.from_dict(document)
        self._history = await self._manager.async_history(self._medicine.id)
        self._update_state()

    def _update_state(self):
        """Calculate next due time and set descriptive state."""
        now = self._manager.now()
        scheduler = self._manager.scheduler
        self._next_due = compute_next_fire_time(
            self._medicine.time_slots, now, self._medicine.days
        )

        snoozed = [r for r in scheduler.pending(self._medicine.id) if r.snoozed]

        overdue = [r for r in scheduler.delivered(self._medicine.id) if r.timing == TIMING_NOW]

        if overdue:
            self._state = "Overdue"
            self._icon = "mdi:alert-circle"
        elif snoozed:
            self._state = f"Snoozed until {_format_time(snoozed[0].fire_time)}"
            self._icon = "mdi:alarm-snooze"
        elif self._next_due is None:
            self._state = "As needed"
            self._icon = "mdi:pill"
        elif self._next_due.date() == now.date():
            self._state = f"Due at {_format_time(self._next_due)}"
            self._icon = "mdi:clock-outline"
        elif self._next_due.date() == now.date() + timedelta(days=1):
            self._state = "Due Tomorrow"
            self._icon = "mdi:calendar-arrow-right"
        else:
            self._state = f"Due {self._next_due.strftime('%A')}"
            self._icon = "mdi:calendar"


def _format_time(value) -> str:
    """12-hour time without leading zero, minutes only when needed."""
    hour = value.strftime("%I").lstrip("0")
    minute = value.strftime("%M")
    ampm = value.strftime("%p")
    if minute == "00":
        return f"{hour} {ampm}"
    return f"{hour}:{minute} {ampm}"
