"""Emergency SOS for MediRemind."""
from __future__ import annotations

from datetime import datetime
import logging
from typing import TYPE_CHECKING, Any

from homeassistant.const import ATTR_LATITUDE, ATTR_LONGITUDE
from homeassistant.exceptions import HomeAssistantError

from .const import COLLECTION_ALERTS, EVENT_SOS
from .models import EmergencyContact, new_id

if TYPE_CHECKING:
    from .manager import ReminderManager

_LOGGER = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_RESOLVED = "resolved"


def build_emergency_message(
    patient: str,
    now: datetime,
    contacts: list[EmergencyContact],
    location: dict[str, float] | None = None,
    note: str | None = None,
) -> str:
    lines = [
        "🆘 EMERGENCY ALERT 🆘",
        "",
        "This is an automated emergency message from MediRemind.",
        f"{patient} needs immediate assistance!",
        f"Time: {now.strftime('%d %b %Y %I:%M %p')}",
    ]
    if location:
        lat, lon = location[ATTR_LATITUDE], location[ATTR_LONGITUDE]
        lines.append(f"Location: https://maps.google.com/?q={lat},{lon}")
    if note:
        lines.append(f"Message: {note}")
    if contacts:
        lines.append("")
        lines.append("Emergency contacts:")
        for contact in contacts:
            label = f" ({contact.relationship})" if contact.relationship else ""
            lines.append(f"- {contact.name}{label}: {contact.phone_number}")
    return "\n".join(lines)


def _patient_location(manager: ReminderManager) -> tuple[str, dict[str, float] | None]:
    """Friendly name and last known position of the elderly user."""
    state = manager.hass.states.get(manager.user_id)
    if state is None:
        return manager.user_id, None
    name = state.attributes.get("friendly_name", state.name)
    lat = state.attributes.get(ATTR_LATITUDE)
    lon = state.attributes.get(ATTR_LONGITUDE)
    if lat is None or lon is None:
        return name, None
    return name, {ATTR_LATITUDE: lat, ATTR_LONGITUDE: lon}


async def async_trigger_sos(manager: ReminderManager, note: str | None = None) -> dict[str, Any]:
    """Raise an emergency alert for the manager's user."""
    now = manager.now()
    contacts = await manager.async_contacts()
    patient, location = _patient_location(manager)
    message = build_emergency_message(patient, now, contacts, location, note)

    delivered = await manager.dispatcher.async_send_emergency_alert(contacts, message)
    if manager.voice:
        await manager.voice.async_speak_emergency()

    alert = {
        "id": new_id(),
        "user_id": manager.user_id,
        "message": message,
        "timestamp": now.isoformat(),
        "location": location,
        "status": STATUS_ACTIVE,
        "contacts": [contact.id for contact in contacts],
        "delivered": delivered,
    }
    await manager.store.async_set(COLLECTION_ALERTS, alert["id"], alert)
    manager.hass.bus.async_fire(EVENT_SOS, {
        "alert_id": alert["id"],
        "user_id": manager.user_id,
        "location": location,
        "delivered": delivered,
    })
    _LOGGER.warning("Emergency alert raised for %s", patient)
    return alert


async def async_resolve_sos(manager: ReminderManager, alert_id: str) -> dict[str, Any]:
    alert = await manager.store.async_get(COLLECTION_ALERTS, alert_id)
    if alert is None or alert["user_id"] != manager.user_id:
        raise HomeAssistantError(f"Unknown emergency alert: {alert_id}")
    alert["status"] = STATUS_RESOLVED
    alert["resolved_at"] = manager.now().isoformat()
    await manager.store.async_set(COLLECTION_ALERTS, alert_id, alert)
    return alert
