"""Spoken reminders for elderly users."""
from __future__ import annotations

import logging
import random

from homeassistant.const import ATTR_ENTITY_ID
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError

from .const import (
    FOOD_AFTER, FOOD_BEFORE, LANG_ENGLISH, LANG_HINDI,
    PRIORITY_HIGH, PRIORITY_LOW, PRIORITY_MEDIUM,
)
from .models import Medicine

_LOGGER = logging.getLogger(__name__)

# priority: (speech rate, volume). Slower speech for elderly listeners.
PRIORITY_SETTINGS = {
    PRIORITY_HIGH: (0.7, 1.0),
    PRIORITY_MEDIUM: (0.8, 0.9),
    PRIORITY_LOW: (0.9, 0.8),
}

REMINDER_MESSAGES = {
    LANG_HINDI: [
        "नमस्ते, अब {name} लेने का समय है। {dosage} खुराक लें।",
        "दवा का समय हो गया है। कृपया {name} की {dosage} खुराक लें।",
        "{name} लेना न भूलें। {dosage} की खुराक का समय है।",
        "आपकी दवा {name} लेने का समय आ गया है। {dosage} लें।",
    ],
    LANG_ENGLISH: [
        "Hello, it is time to take {name}. Please take {dosage}.",
        "Medicine time. Please take your {dosage} of {name}.",
        "Don't forget your {name}. It is time for {dosage}.",
    ],
}

FOOD_MESSAGES = {
    LANG_HINDI: {
        FOOD_BEFORE: "खाना खाने से पहले यह दवा लें। भोजन के साथ पानी भी पिएं।",
        FOOD_AFTER: "खाना खाने के बाद यह दवा लें। पेट भरने के बाद दवा लेना बेहतर है।",
    },
    LANG_ENGLISH: {
        FOOD_BEFORE: "Take this medicine before your meal, with some water.",
        FOOD_AFTER: "Take this medicine after your meal.",
    },
}

EMERGENCY_MESSAGES = {
    LANG_HINDI: "आपातकाल! तुरंत डॉक्टर को कॉल करें या नजदीकी अस्पताल जाएं। "
                "परिवार के सदस्यों को भी सूचना दी जा रही है।",
    LANG_ENGLISH: "Emergency! Call a doctor or go to the nearest hospital now. "
                  "Your family is being informed.",
}

STOCK_MESSAGES = {
    LANG_HINDI: (
        "चेतावनी! {name} की दवा केवल {days} दिन के लिए बची है। तुरंत नई दवा खरीदें।",
        "सूचना: {name} की दवा {days} दिन में खत्म हो जाएगी। नई दवा खरीदने की तैयारी करें।",
        "{name} की स्टॉक जांच: अभी {days} दिन की दवा बची है।",
    ),
    LANG_ENGLISH: (
        "Warning! Only {days} days of {name} are left. Please buy more today.",
        "{name} will run out in {days} days. Please plan a refill.",
        "{name} stock check: {days} days left.",
    ),
}

ADHERENCE_MESSAGES = {
    LANG_HINDI: (
        "बहुत बढ़िया! आपने {days} दिन नियमित दवा ली है। इसी तरह जारी रखें।",
        "शाबाश! {days} दिन से नियमित दवा ले रहे हैं। बहुत अच्छा काम कर रहे हैं।",
        "आपने {days} दिन नियमित दवा ली है। इसी तरह जारी रखें।",
    ),
    LANG_ENGLISH: (
        "Excellent! You have taken your medicine for {days} days in a row.",
        "Well done! {days} days of regular medicine.",
        "You have taken your medicine for {days} days. Keep it up.",
    ),
}


def reminder_message(medicine: Medicine, language: str) -> str:
    templates = REMINDER_MESSAGES.get(language, REMINDER_MESSAGES[LANG_ENGLISH])
    return random.choice(templates).format(name=medicine.name, dosage=medicine.dosage)


def food_message(food_timing: str, language: str) -> str | None:
    return FOOD_MESSAGES.get(language, FOOD_MESSAGES[LANG_ENGLISH]).get(food_timing)


def stock_message(name: str, days: int, language: str) -> str:
    critical, low, normal = STOCK_MESSAGES.get(language, STOCK_MESSAGES[LANG_ENGLISH])
    if days <= 2:
        return critical.format(name=name, days=days)
    if days <= 7:
        return low.format(name=name, days=days)
    return normal.format(name=name, days=days)


def adherence_message(days: int, language: str) -> str:
    great, good, normal = ADHERENCE_MESSAGES.get(language, ADHERENCE_MESSAGES[LANG_ENGLISH])
    if days >= 30:
        return great.format(days=days)
    if days >= 7:
        return good.format(days=days)
    return normal.format(days=days)


class VoiceAnnouncer:
    """Speaks messages through a TTS entity on one media player.

    Speaking is best effort: a missing engine or a failing service call is
    logged and never raised to the caller.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        tts_entity: str | None,
        media_player: str | None,
        language: str = LANG_HINDI,
        rate_option: str | None = None,
    ) -> None:
        self.hass = hass
        self.tts_entity = tts_entity
        self.media_player = media_player
        self.language = language
        self._rate_option = rate_option

    @property
    def available(self) -> bool:
        return bool(
            self.tts_entity
            and self.media_player
            and self.hass.services.has_service("tts", "speak")
        )

    async def async_speak(self, text: str, priority: str = PRIORITY_MEDIUM) -> None:
        """Speak ``text``. High priority interrupts whatever is playing."""
        if not self.available:
            _LOGGER.debug("Speech synthesis not available, skipping: %s", text)
            return

        rate, volume = PRIORITY_SETTINGS.get(priority, PRIORITY_SETTINGS[PRIORITY_MEDIUM])
        player = {ATTR_ENTITY_ID: self.media_player}
        try:
            if priority == PRIORITY_HIGH and self.hass.services.has_service(
                "media_player", "media_stop"
            ):
                await self.hass.services.async_call(
                    "media_player", "media_stop", player, blocking=True
                )
            if self.hass.services.has_service("media_player", "volume_set"):
                await self.hass.services.async_call(
                    "media_player", "volume_set",
                    {**player, "volume_level": volume}, blocking=True,
                )

            data = {
                ATTR_ENTITY_ID: self.tts_entity,
                "media_player_entity_id": self.media_player,
                "message": text,
                "language": self.language,
            }
            if self._rate_option:
                data["options"] = {self._rate_option: rate}
            await self.hass.services.async_call("tts", "speak", data, blocking=True)
        except HomeAssistantError as err:
            _LOGGER.warning("Voice announcement failed: %s", err)

    async def async_speak_medicine_reminder(self, medicine: Medicine) -> None:
        await self.async_speak(reminder_message(medicine, self.language), PRIORITY_HIGH)
        if note := food_message(medicine.food_timing, self.language):
            await self.async_speak(note, PRIORITY_MEDIUM)

    async def async_speak_emergency(self) -> None:
        message = EMERGENCY_MESSAGES.get(self.language, EMERGENCY_MESSAGES[LANG_ENGLISH])
        await self.async_speak(message, PRIORITY_HIGH)

    async def async_speak_stock_reminder(self, medicine: Medicine) -> None:
        priority = PRIORITY_HIGH if medicine.stock_days <= 2 else PRIORITY_MEDIUM
        await self.async_speak(
            stock_message(medicine.name, medicine.stock_days, self.language), priority
        )

    async def async_speak_adherence(self, streak: int) -> None:
        await self.async_speak(adherence_message(streak, self.language), PRIORITY_LOW)
