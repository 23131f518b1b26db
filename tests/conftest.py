"""Global fixtures for MediRemind integration."""
import pytest

from homeassistant.core import HomeAssistant

from custom_components.medi_remind.const import (
    CONF_LANGUAGE, CONF_NOTIFY_SERVICE, CONF_PATIENT, DOMAIN, LANG_ENGLISH,
    STORAGE_VERSION,
)

from pytest_homeassistant_custom_component.common import MockConfigEntry

pytest_plugins = "pytest_homeassistant_custom_component"

ENTRY_ID = "test_entry"
PATIENT = "person.grandma"
NOTIFY = "mobile_app_grandma_phone"


@pytest.fixture(autouse=True)
def auto_enable_custom_integrations(enable_custom_integrations):
    """Enable custom integrations defined in the test dir."""
    yield


@pytest.fixture
def medicine_doc():
    """Build a stored medicine document."""
    def _build(medicine_id="a1", **overrides):
        doc = {
            "id": medicine_id,
            "name": "Metformin",
            "dosage": "500mg",
            "frequency": "twice-daily",
            "time_slots": ["08:00", "20:00"],
            "days": [],
            "stock_days": 30,
            "expiry_date": "2031-12-31",
            "food_timing": "after",
            "instructions": "",
            "elderly_user_id": PATIENT,
            "adherence_streak": 0,
            "last_taken": None,
        }
        doc.update(overrides)
        return doc
    return _build


@pytest.fixture
def setup_integration(hass: HomeAssistant, hass_storage):
    """Store documents for the test user and set up a config entry."""
    async def _setup(medicines=(), contacts=(), options=None, data=None):
        hass.states.async_set(
            PATIENT, "home",
            {"friendly_name": "Grandma", "latitude": 15.49, "longitude": 73.82},
        )
        hass_storage[f"{DOMAIN}.{ENTRY_ID}"] = {
            "version": STORAGE_VERSION,
            "minor_version": 1,
            "key": f"{DOMAIN}.{ENTRY_ID}",
            "data": {
                "medicines": {doc["id"]: doc for doc in medicines},
                "contacts": {doc["id"]: doc for doc in contacts},
            },
        }
        entry = MockConfigEntry(
            domain=DOMAIN,
            entry_id=ENTRY_ID,
            unique_id=PATIENT,
            data=data or {
                CONF_PATIENT: PATIENT,
                CONF_LANGUAGE: LANG_ENGLISH,
                CONF_NOTIFY_SERVICE: NOTIFY,
            },
            options=options or {},
        )
        entry.add_to_hass(hass)

        assert await hass.config_entries.async_setup(entry.entry_id)
        await hass.async_block_till_done()
        return entry
    return _setup
