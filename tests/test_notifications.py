"""Tests for push and voice delivery."""
from datetime import date

from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import HomeAssistantError

from custom_components.medi_remind.const import TIMING_EARLY, TIMING_NOW
from custom_components.medi_remind.models import (
    Acknowledged, Medicine, ReplaceRequested, Skipped, Snoozed, Taken, parse_action,
)
from custom_components.medi_remind.notifications import NotificationDispatcher
from custom_components.medi_remind.voice import VoiceAnnouncer, adherence_message, stock_message

from pytest_homeassistant_custom_component.common import async_mock_service

NOTIFY = "mobile_app_grandma_phone"


def _voice_services(hass):
    return (
        async_mock_service(hass, "tts", "speak"),
        async_mock_service(hass, "media_player", "media_stop"),
        async_mock_service(hass, "media_player", "volume_set"),
    )


async def test_dispatch_without_permission(hass: HomeAssistant, medicine_doc):
    dispatcher = NotificationDispatcher(hass, NOTIFY)

    assert not await dispatcher.async_dispatch(Medicine.from_dict(medicine_doc()), TIMING_NOW)

    # The phone registers later
    calls = async_mock_service(hass, "notify", NOTIFY)
    assert await dispatcher.async_dispatch(Medicine.from_dict(medicine_doc()), TIMING_NOW)
    assert len(calls) == 1


async def test_dispatch_payload(hass: HomeAssistant, medicine_doc):
    calls = async_mock_service(hass, "notify", NOTIFY)
    dispatcher = NotificationDispatcher(hass, NOTIFY, snooze_minutes=10)
    medicine = Medicine.from_dict(medicine_doc("a1"))

    assert await dispatcher.async_dispatch(medicine, TIMING_NOW, "ff00")

    call = calls[0]
    assert call.data["title"] == "Time to take Metformin!"
    assert call.data["message"] == "500mg - Don't forget to take your medicine"
    data = call.data["data"]
    assert data["tag"] == "medicine-a1"
    assert data["sticky"] is True
    actions = [parse_action(action["action"]) for action in data["actions"]]
    assert actions == [Taken("a1", "ff00"), Snoozed("a1", 10, "ff00"), Skipped("a1", "ff00")]
    assert data["actions"][1]["title"] == "⏰ Snooze 10min"


async def test_early_reminder_title(hass: HomeAssistant, medicine_doc):
    calls = async_mock_service(hass, "notify", NOTIFY)
    dispatcher = NotificationDispatcher(hass, NOTIFY, early_minutes=15)

    await dispatcher.async_dispatch(Medicine.from_dict(medicine_doc()), TIMING_EARLY)

    assert calls[0].data["title"] == "Reminder: Metformin in 15 minutes"


async def test_early_reminder_title_when_dose_is_close(hass: HomeAssistant, medicine_doc):
    calls = async_mock_service(hass, "notify", NOTIFY)
    dispatcher = NotificationDispatcher(hass, NOTIFY, early_minutes=15)
    medicine = Medicine.from_dict(medicine_doc())

    await dispatcher.async_dispatch(medicine, TIMING_EARLY, minutes_left=5)
    await dispatcher.async_dispatch(medicine, TIMING_EARLY, minutes_left=1)
    await dispatcher.async_dispatch(medicine, TIMING_EARLY, minutes_left=0)

    assert [call.data["title"] for call in calls] == [
        "Reminder: Metformin in 5 minutes",
        "Reminder: Metformin in 1 minute",
        "Reminder: Metformin soon",
    ]


async def test_failed_send_returns_false(hass: HomeAssistant, medicine_doc):
    async def _fail(call: ServiceCall) -> None:
        raise HomeAssistantError("phone unreachable")

    hass.services.async_register("notify", NOTIFY, _fail)
    dispatcher = NotificationDispatcher(hass, NOTIFY)

    assert not await dispatcher.async_dispatch(Medicine.from_dict(medicine_doc()), TIMING_NOW)


async def test_expiry_warning(hass: HomeAssistant, medicine_doc):
    calls = async_mock_service(hass, "notify", NOTIFY)
    dispatcher = NotificationDispatcher(hass, NOTIFY)
    medicine = Medicine.from_dict(medicine_doc(expiry_date="2030-01-20"))

    assert await dispatcher.async_send_expiry_warning(medicine, date(2030, 1, 7))
    assert calls[0].data["message"] == "Metformin expires in 13 days."

    await dispatcher.async_send_expiry_warning(medicine, date(2030, 1, 21))
    assert calls[1].data["message"] == "Metformin has expired. Please replace it immediately."
    actions = [parse_action(a["action"]) for a in calls[1].data["data"]["actions"]]
    assert actions == [Acknowledged("a1"), ReplaceRequested("a1")]


async def test_emergency_without_caretaker(hass: HomeAssistant):
    calls = async_mock_service(hass, "notify", NOTIFY)
    dispatcher = NotificationDispatcher(hass, NOTIFY, caretaker_service="mobile_app_son")

    assert not await dispatcher.async_send_emergency_alert([], "help")
    # The user still gets a confirmation
    assert len(calls) == 1


async def test_voice_reminder_interrupts_player(hass: HomeAssistant, medicine_doc):
    speak, stop, volume = _voice_services(hass)
    voice = VoiceAnnouncer(hass, "tts.google_en_com", "media_player.kitchen", "en")

    await voice.async_speak_medicine_reminder(Medicine.from_dict(medicine_doc(food_timing="before")))

    assert len(stop) == 1
    assert [call.data["volume_level"] for call in volume] == [1.0, 0.9]
    assert len(speak) == 2
    assert "Metformin" in speak[0].data["message"]
    assert speak[0].data["media_player_entity_id"] == "media_player.kitchen"
    assert speak[0].data["language"] == "en"
    assert "options" not in speak[0].data
    assert "before your meal" in speak[1].data["message"]


async def test_voice_rate_option(hass: HomeAssistant):
    speak, stop, _ = _voice_services(hass)
    voice = VoiceAnnouncer(hass, "tts.cloud", "media_player.kitchen", "hi", rate_option="speed")

    await voice.async_speak_adherence(7)

    assert len(stop) == 0
    assert speak[0].data["options"] == {"speed": 0.9}
    assert speak[0].data["message"] == adherence_message(7, "hi")


async def test_voice_unavailable_is_silent(hass: HomeAssistant, medicine_doc):
    voice = VoiceAnnouncer(hass, "tts.google_en_com", "media_player.kitchen", "en")
    assert not voice.available

    await voice.async_speak_medicine_reminder(Medicine.from_dict(medicine_doc()))
    await voice.async_speak_emergency()


async def test_voice_failure_is_not_raised(hass: HomeAssistant):
    async def _fail(call: ServiceCall) -> None:
        raise HomeAssistantError("engine offline")

    hass.services.async_register("tts", "speak", _fail)
    voice = VoiceAnnouncer(hass, "tts.google_en_com", "media_player.kitchen", "en")

    await voice.async_speak_emergency()


async def test_dispatch_speaks_due_reminders_only(hass: HomeAssistant, medicine_doc):
    async_mock_service(hass, "notify", NOTIFY)
    speak, _, _ = _voice_services(hass)
    voice = VoiceAnnouncer(hass, "tts.google_en_com", "media_player.kitchen", "en")
    dispatcher = NotificationDispatcher(hass, NOTIFY, voice=voice)
    medicine = Medicine.from_dict(medicine_doc(food_timing="anytime"))

    await dispatcher.async_dispatch(medicine, TIMING_EARLY, speak=True)
    assert len(speak) == 0

    await dispatcher.async_dispatch(medicine, TIMING_NOW, speak=True)
    assert len(speak) == 1


def test_stock_message_levels():
    assert stock_message("Metformin", 2, "en").startswith("Warning!")
    assert stock_message("Metformin", 5, "en") == "Metformin will run out in 5 days. Please plan a refill."
    assert stock_message("Metformin", 20, "en") == "Metformin stock check: 20 days left."
