"""Tests for emergency SOS alerts."""
from datetime import datetime

import pytest

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ServiceValidationError
from homeassistant.util import dt as dt_util

from custom_components.medi_remind.const import (
    COLLECTION_ALERTS, CONF_CARETAKER_NOTIFY, DOMAIN, EVENT_SOS,
)
from custom_components.medi_remind.emergency import build_emergency_message
from custom_components.medi_remind.models import EmergencyContact

from pytest_homeassistant_custom_component.common import async_capture_events, async_mock_service

NOTIFY = "mobile_app_grandma_phone"
CARETAKER = "mobile_app_son_phone"

CONTACTS = [
    {
        "id": "c1",
        "name": "Ravi",
        "relationship": "son",
        "phone_number": "+91 98765 43210",
        "user_id": "person.grandma",
        "email": None,
        "is_primary": False,
    },
    {
        "id": "c2",
        "name": "Dr. Mehta",
        "relationship": "",
        "phone_number": "0832-2456789",
        "user_id": "person.grandma",
        "email": None,
        "is_primary": True,
    },
]


def test_emergency_message():
    contacts = [EmergencyContact.from_dict(contact) for contact in CONTACTS]
    now = datetime(2030, 1, 7, 21, 15, tzinfo=dt_util.UTC)

    message = build_emergency_message(
        "Grandma", now, contacts, {"latitude": 15.49, "longitude": 73.82}, "Fell in the bathroom"
    )

    assert "Grandma needs immediate assistance!" in message
    assert "Time: 07 Jan 2030 09:15 PM" in message
    assert "https://maps.google.com/?q=15.49,73.82" in message
    assert "Message: Fell in the bathroom" in message
    assert "- Ravi (son): +91 98765 43210" in message
    assert "- Dr. Mehta: 0832-2456789" in message


async def test_trigger_and_resolve_sos(hass: HomeAssistant, setup_integration):
    caretaker_calls = async_mock_service(hass, "notify", CARETAKER)
    user_calls = async_mock_service(hass, "notify", NOTIFY)
    events = async_capture_events(hass, EVENT_SOS)
    await setup_integration(contacts=CONTACTS, options={CONF_CARETAKER_NOTIFY: CARETAKER})

    response = await hass.services.async_call(
        DOMAIN, "trigger_sos", {"message": "Chest pain"}, blocking=True, return_response=True
    )
    await hass.async_block_till_done()

    assert response["delivered"] is True
    assert len(caretaker_calls) == 1
    message = caretaker_calls[0].data["message"]
    assert "Grandma needs immediate assistance!" in message
    assert "Chest pain" in message
    # Primary contact first
    assert message.index("Dr. Mehta") < message.index("Ravi")
    assert "Dr. Mehta, Ravi" in user_calls[0].data["message"]
    assert events[0].data["alert_id"] == response["alert_id"]

    manager = hass.data[DOMAIN]["test_entry"]
    alert = await manager.store.async_get(COLLECTION_ALERTS, response["alert_id"])
    assert alert["status"] == "active"
    assert alert["location"] == {"latitude": 15.49, "longitude": 73.82}

    await hass.services.async_call(
        DOMAIN, "resolve_sos", {"alert_id": response["alert_id"]}, blocking=True
    )
    alert = await manager.store.async_get(COLLECTION_ALERTS, response["alert_id"])
    assert alert["status"] == "resolved"
    assert "resolved_at" in alert


async def test_resolve_unknown_alert(hass: HomeAssistant, setup_integration):
    await setup_integration()

    with pytest.raises(ServiceValidationError):
        await hass.services.async_call(
            DOMAIN, "resolve_sos", {"alert_id": "nope"}, blocking=True
        )
