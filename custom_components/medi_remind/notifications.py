"""Push notification delivery for MediRemind."""
from __future__ import annotations

from datetime import date
import logging
from typing import Any

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError

from .const import (
    ACTION_ACKNOWLEDGE, ACTION_REPLACE, ACTION_SKIP, ACTION_SNOOZE,
    ACTION_TAKEN, DEFAULT_EARLY_MINUTES, DEFAULT_SNOOZE_MINUTES,
    NOTIFICATION_ICON, TIMING_NOW,
)
from .models import EmergencyContact, Medicine, action_id
from .voice import VoiceAnnouncer

_LOGGER = logging.getLogger(__name__)


def reminder_title(medicine: Medicine, timing: str, minutes_left: int) -> str:
    if timing == TIMING_NOW:
        return f"Time to take {medicine.name}!"
    if minutes_left < 1:
        return f"Reminder: {medicine.name} soon"
    return f"Reminder: {medicine.name} in {minutes_left} minute{'' if minutes_left == 1 else 's'}"


class NotificationDispatcher:
    """Sends reminders to the elderly user's notify target."""

    def __init__(
        self,
        hass: HomeAssistant,
        notify_service: str | None,
        caretaker_service: str | None = None,
        early_minutes: int = DEFAULT_EARLY_MINUTES,
        snooze_minutes: int = DEFAULT_SNOOZE_MINUTES,
        voice: VoiceAnnouncer | None = None,
    ) -> None:
        self.hass = hass
        self.notify_service = notify_service
        self.caretaker_service = caretaker_service
        self.voice = voice
        self.early_minutes = early_minutes
        self.snooze_minutes = snooze_minutes
        self._granted = False

    async def async_request_permission(self) -> bool:
        """Check that the notify target can be used.

        A granted target is remembered; a missing one is asked again on the
        next dispatch since mobile devices register late.
        """
        if self._granted:
            return True
        self._granted = bool(
            self.notify_service
            and self.hass.services.has_service("notify", self.notify_service)
        )
        if not self._granted:
            _LOGGER.debug("Notify target %s is not available", self.notify_service)
        return self._granted

    async def async_dispatch(
        self,
        medicine: Medicine,
        timing: str,
        reminder_id: str | None = None,
        speak: bool = False,
        minutes_left: int | None = None,
    ) -> bool:
        """Deliver a reminder for ``medicine``. Returns False if nothing was sent.

        With ``speak`` the due-now reminder is also read out; the voice
        channel never changes the result. ``minutes_left`` is the time to the
        dose for a heads-up that was moved closer than usual.
        """
        if minutes_left is None:
            minutes_left = self.early_minutes
        if not await self.async_request_permission():
            return False

        actions = [
            {"action": action_id(ACTION_TAKEN, medicine.id, reminder_id), "title": "✅ Taken"},
            {
                "action": action_id(ACTION_SNOOZE, medicine.id, reminder_id),
                "title": f"⏰ Snooze {self.snooze_minutes}min",
            },
            {"action": action_id(ACTION_SKIP, medicine.id, reminder_id), "title": "❌ Skip"},
        ]
        sent = await self._async_send(
            self.notify_service,
            reminder_title(medicine, timing, minutes_left),
            f"{medicine.dosage} - Don't forget to take your medicine",
            {
                "tag": f"medicine-{medicine.id}",
                "icon": NOTIFICATION_ICON,
                "sticky": True,
                "actions": actions,
            },
        )
        if sent and speak and self.voice and timing == TIMING_NOW:
            await self.voice.async_speak_medicine_reminder(medicine)
        return sent

    async def async_send_expiry_warning(self, medicine: Medicine, today: date) -> bool:
        if not await self.async_request_permission():
            return False

        days_left = (medicine.expiry_date - today).days
        if days_left <= 0:
            body = f"{medicine.name} has expired. Please replace it immediately."
        else:
            body = f"{medicine.name} expires in {days_left} day{'' if days_left == 1 else 's'}."

        return await self._async_send(
            self.notify_service,
            f"⚠️ {medicine.name} expiring soon!",
            body,
            {
                "tag": f"expiry-{medicine.id}",
                "icon": NOTIFICATION_ICON,
                "actions": [
                    {"action": action_id(ACTION_ACKNOWLEDGE, medicine.id, None), "title": "✅ Acknowledged"},
                    {"action": action_id(ACTION_REPLACE, medicine.id, None), "title": "🛒 Order Replacement"},
                ],
            },
        )

    async def async_send_stock_warning(self, medicine: Medicine) -> bool:
        if not await self.async_request_permission():
            return False
        return await self._async_send(
            self.notify_service,
            f"{medicine.name} running low",
            f"Only {medicine.stock_days} day(s) of {medicine.name} left.",
            {"tag": f"stock-{medicine.id}", "icon": NOTIFICATION_ICON},
        )

    async def async_send_emergency_alert(
        self, contacts: list[EmergencyContact], message: str
    ) -> bool:
        """Alert the caretaker and confirm to the elderly user."""
        names = ", ".join(contact.name for contact in contacts) or "no contacts"
        sent = False
        if self.caretaker_service and self.hass.services.has_service(
            "notify", self.caretaker_service
        ):
            sent = await self._async_send(
                self.caretaker_service,
                "🆘 EMERGENCY ALERT",
                message,
                {"tag": "emergency-alert", "priority": "high", "ttl": 0},
            )
        else:
            _LOGGER.warning("No caretaker notify target, emergency alert not delivered")

        if await self.async_request_permission():
            await self._async_send(
                self.notify_service,
                "🆘 Emergency Alert Sent!",
                f"Emergency contacts ({names}) have been notified of your emergency.",
                {"tag": "emergency-alert"},
            )
        return sent

    async def _async_send(
        self, service: str, title: str, message: str, data: dict[str, Any]
    ) -> bool:
        try:
            await self.hass.services.async_call(
                "notify",
                service,
                {"title": title, "message": message, "data": data},
                blocking=True,
            )
        except HomeAssistantError as err:
            _LOGGER.error("Error sending notification via notify.%s: %s", service, err)
            return False
        return True
