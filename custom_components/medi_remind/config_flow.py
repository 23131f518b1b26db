"""Config flow for MediRemind integration."""
from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.core import callback
from homeassistant.data_entry_flow import FlowResult
from homeassistant.helpers.selector import (
    BooleanSelector,
    DateSelector,
    EntitySelector,
    EntitySelectorConfig,
    NumberSelector,
    NumberSelectorConfig,
    NumberSelectorMode,
    SelectOptionDict,
    SelectSelector,
    SelectSelectorConfig,
    SelectSelectorMode,
    TextSelector,
    TextSelectorConfig,
)

from .const import (
    CONF_CARETAKER_NOTIFY, CONF_CONTACT_ID, CONF_DEMO_MODE, CONF_DOSAGE,
    CONF_EARLY_MINUTES, CONF_EMAIL, CONF_EXPIRY_DATE, CONF_FOOD_TIMING,
    CONF_FREQUENCY, CONF_INSTRUCTIONS, CONF_LANGUAGE, CONF_MEDIA_PLAYER,
    CONF_MEDICINE_ID, CONF_NAME, CONF_NOTIFY_SERVICE, CONF_PATIENT, CONF_PHONE,
    CONF_PRIMARY, CONF_RELATIONSHIP, CONF_SCHEDULE_DAYS, CONF_SNOOZE_MINUTES,
    CONF_STOCK_DAYS, CONF_TIME_SLOTS, CONF_TTS_ENTITY, CONF_TTS_RATE_OPTION,
    CONF_TZ_SENSOR, CONF_VOICE_ENABLED, DEFAULT_EARLY_MINUTES,
    DEFAULT_LANGUAGE, DEFAULT_SNOOZE_MINUTES, DEFAULT_STOCK_DAYS, DOMAIN,
    FOOD_ANYTIME, FOOD_TIMINGS, FREQ_TWICE, FREQUENCY_SLOTS, LANG_ENGLISH,
    LANG_HINDI,
)
from .manager import ReminderManager
from .response import MedicineNotFound

_LOGGER = logging.getLogger(__name__)

LANGUAGE_OPTIONS = [
    SelectOptionDict(value=LANG_HINDI, label="हिन्दी (Hindi)"),
    SelectOptionDict(value=LANG_ENGLISH, label="English"),
]

DAY_OPTIONS = [
    SelectOptionDict(value="mon", label="Monday"),
    SelectOptionDict(value="tue", label="Tuesday"),
    SelectOptionDict(value="wed", label="Wednesday"),
    SelectOptionDict(value="thu", label="Thursday"),
    SelectOptionDict(value="fri", label="Friday"),
    SelectOptionDict(value="sat", label="Saturday"),
    SelectOptionDict(value="sun", label="Sunday"),
]

CLEARABLE_SETTINGS = (
    CONF_NOTIFY_SERVICE, CONF_CARETAKER_NOTIFY, CONF_TTS_ENTITY,
    CONF_MEDIA_PLAYER, CONF_TTS_RATE_OPTION, CONF_TZ_SENSOR,
)


def _suggested(value: Any) -> dict[str, Any]:
    return {"suggested_value": value}


def get_medicine_schema(defaults=None, new=True):
    """Build the schema for a single medicine.

    The expiry date is only asked for new medicines; it cannot be edited.
    """
    if defaults is None:
        defaults = {}

    schema = {
        vol.Required(CONF_NAME, default=defaults.get(CONF_NAME, "")): str,
        vol.Optional(CONF_DOSAGE, default=defaults.get(CONF_DOSAGE, "")): str,
        vol.Required(CONF_FREQUENCY, default=defaults.get(CONF_FREQUENCY, FREQ_TWICE)): SelectSelector(
            SelectSelectorConfig(options=list(FREQUENCY_SLOTS), mode=SelectSelectorMode.DROPDOWN)
        ),
        # Left empty, the frequency's default slots are used
        vol.Optional(CONF_TIME_SLOTS, description=_suggested(defaults.get(CONF_TIME_SLOTS))): TextSelector(
            TextSelectorConfig(multiple=True)
        ),
        vol.Optional(CONF_SCHEDULE_DAYS, default=defaults.get(CONF_SCHEDULE_DAYS, [])): SelectSelector(
            SelectSelectorConfig(options=DAY_OPTIONS, multiple=True)
        ),
        vol.Optional(CONF_STOCK_DAYS, default=defaults.get(CONF_STOCK_DAYS, DEFAULT_STOCK_DAYS)): NumberSelector(
            NumberSelectorConfig(min=0, max=365, mode=NumberSelectorMode.BOX)
        ),
        vol.Optional(CONF_FOOD_TIMING, default=defaults.get(CONF_FOOD_TIMING, FOOD_ANYTIME)): SelectSelector(
            SelectSelectorConfig(options=FOOD_TIMINGS, mode=SelectSelectorMode.DROPDOWN)
        ),
        vol.Optional(CONF_INSTRUCTIONS, default=defaults.get(CONF_INSTRUCTIONS, "")): TextSelector(
            TextSelectorConfig(multiline=True)
        ),
    }
    if new:
        schema[vol.Required(CONF_EXPIRY_DATE)] = DateSelector()
    return vol.Schema(schema)


CONTACT_FORM = vol.Schema({
    vol.Required(CONF_NAME): str,
    vol.Optional(CONF_RELATIONSHIP, default=""): str,
    vol.Required(CONF_PHONE): str,
    vol.Optional(CONF_EMAIL): str,
    vol.Optional(CONF_PRIMARY, default=False): BooleanSelector(),
})


def _error_key(err: vol.Invalid) -> str:
    """Form field an error belongs to."""
    if err.path and str(err.path[0]) in (CONF_TIME_SLOTS, CONF_EXPIRY_DATE, CONF_SCHEDULE_DAYS):
        return str(err.path[0])
    return "base"


class MediRemindConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for MediRemind."""

    VERSION = 1

    @staticmethod
    @callback
    def async_get_options_flow(config_entry):
        return MediRemindOptionsFlowHandler()

    async def async_step_user(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        """Step 1: Elderly user, language and notification targets."""
        errors = {}

        if user_input is not None:
            patient_id = user_input[CONF_PATIENT]

            await self.async_set_unique_id(patient_id)
            self._abort_if_unique_id_configured()

            state = self.hass.states.get(patient_id)
            name = state.attributes.get("friendly_name", state.name) if state else patient_id

            return self.async_create_entry(
                title=f"Medicines for {name}",
                data={
                    CONF_PATIENT: patient_id,
                    CONF_LANGUAGE: user_input.get(CONF_LANGUAGE, DEFAULT_LANGUAGE),
                    CONF_NOTIFY_SERVICE: user_input.get(CONF_NOTIFY_SERVICE),
                    CONF_CARETAKER_NOTIFY: user_input.get(CONF_CARETAKER_NOTIFY),
                    CONF_TZ_SENSOR: user_input.get(CONF_TZ_SENSOR),
                }
            )

        schema = vol.Schema({
            vol.Required(CONF_PATIENT): EntitySelector(
                EntitySelectorConfig(domain="person")
            ),
            vol.Required(CONF_LANGUAGE, default=DEFAULT_LANGUAGE): SelectSelector(
                SelectSelectorConfig(options=LANGUAGE_OPTIONS, mode=SelectSelectorMode.DROPDOWN)
            ),
            # notify.<service> of the elderly user's phone, e.g. mobile_app_pixel
            vol.Optional(CONF_NOTIFY_SERVICE): str,
            vol.Optional(CONF_CARETAKER_NOTIFY): str,
            vol.Optional(CONF_TZ_SENSOR): EntitySelector(
                EntitySelectorConfig(domain="sensor")
            ),
        })

        return self.async_show_form(step_id="user", data_schema=schema, errors=errors)


class MediRemindOptionsFlowHandler(config_entries.OptionsFlow):
    """Handle options flow."""

    def __init__(self) -> None:
        self._editing_id = None

    @property
    def _manager(self) -> ReminderManager | None:
        return self.hass.data.get(DOMAIN, {}).get(self.config_entry.entry_id)

    async def async_step_init(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        """Menu: Medicines, contacts and settings."""
        if self._manager is None:
            return self.async_abort(reason="not_loaded")
        return self.async_show_menu(
            step_id="init",
            menu_options=[
                "add_medicine", "edit_medicine", "remove_medicine",
                "add_contact", "remove_contact", "global_settings",
            ]
        )

    # --- SETTINGS ---
    async def async_step_global_settings(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        """Update notification, voice and timing settings."""
        if user_input is not None:
            # Cleared fields must override what the user step stored
            cleared = {key: None for key in CLEARABLE_SETTINGS if not user_input.get(key)}
            return self.async_create_entry(title="", data={**user_input, **cleared})

        current = {**self.config_entry.data, **self.config_entry.options}

        schema = vol.Schema({
            vol.Required(CONF_LANGUAGE, default=current.get(CONF_LANGUAGE, DEFAULT_LANGUAGE)): SelectSelector(
                SelectSelectorConfig(options=LANGUAGE_OPTIONS, mode=SelectSelectorMode.DROPDOWN)
            ),
            vol.Optional(CONF_NOTIFY_SERVICE, description=_suggested(current.get(CONF_NOTIFY_SERVICE))): str,
            vol.Optional(CONF_CARETAKER_NOTIFY, description=_suggested(current.get(CONF_CARETAKER_NOTIFY))): str,
            vol.Required(CONF_VOICE_ENABLED, default=current.get(CONF_VOICE_ENABLED, False)): BooleanSelector(),
            vol.Optional(CONF_TTS_ENTITY, description=_suggested(current.get(CONF_TTS_ENTITY))): EntitySelector(
                EntitySelectorConfig(domain="tts")
            ),
            vol.Optional(CONF_MEDIA_PLAYER, description=_suggested(current.get(CONF_MEDIA_PLAYER))): EntitySelector(
                EntitySelectorConfig(domain="media_player")
            ),
            vol.Optional(CONF_TTS_RATE_OPTION, description=_suggested(current.get(CONF_TTS_RATE_OPTION))): str,
            vol.Required(CONF_EARLY_MINUTES, default=current.get(CONF_EARLY_MINUTES, DEFAULT_EARLY_MINUTES)): vol.All(
                vol.Coerce(int), vol.Range(min=0, max=120)
            ),
            vol.Required(CONF_SNOOZE_MINUTES, default=current.get(CONF_SNOOZE_MINUTES, DEFAULT_SNOOZE_MINUTES)): vol.All(
                vol.Coerce(int), vol.Range(min=1, max=120)
            ),
            vol.Optional(CONF_TZ_SENSOR, description=_suggested(current.get(CONF_TZ_SENSOR))): EntitySelector(
                EntitySelectorConfig(domain="sensor")
            ),
            vol.Required(CONF_DEMO_MODE, default=current.get(CONF_DEMO_MODE, False)): BooleanSelector(),
        })

        return self.async_show_form(step_id="global_settings", data_schema=schema)

    # --- ADD ---
    async def async_step_add_medicine(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        """Form to add a new medicine."""
        errors = {}
        if user_input is not None:
            try:
                await self._manager.async_add_medicine(user_input)
            except vol.Invalid as err:
                _LOGGER.debug("Rejected medicine: %s", err)
                errors[_error_key(err)] = "invalid_medicine"
            else:
                return self._update_entry()

        return self.async_show_form(
            step_id="add_medicine",
            data_schema=get_medicine_schema(user_input),
            errors=errors,
        )

    # --- EDIT ---
    async def async_step_edit_medicine(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        medicines = await self._manager.async_medicines()
        if not medicines:
            return self.async_abort(reason="no_medicines")

        if user_input is not None:
            self._editing_id = user_input[CONF_MEDICINE_ID]
            return await self.async_step_edit_medicine_details()

        return self.async_show_form(
            step_id="edit_medicine", data_schema=_medicine_picker(medicines)
        )

    async def async_step_edit_medicine_details(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        errors = {}
        if user_input is not None:
            try:
                await self._manager.async_update_medicine(self._editing_id, user_input)
            except vol.Invalid as err:
                _LOGGER.debug("Rejected medicine update: %s", err)
                errors[_error_key(err)] = "invalid_medicine"
            else:
                return self._update_entry()

        try:
            existing = await self._manager.responses.async_get_medicine(self._editing_id)
        except MedicineNotFound:
            return self.async_abort(reason="no_medicines")
        return self.async_show_form(
            step_id="edit_medicine_details",
            data_schema=get_medicine_schema(defaults=existing.as_dict(), new=False),
            errors=errors,
        )

    # --- REMOVE ---
    async def async_step_remove_medicine(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        medicines = await self._manager.async_medicines()
        if not medicines:
            return self.async_abort(reason="no_medicines")

        if user_input is not None:
            mid = user_input[CONF_MEDICINE_ID]
            if any(medicine.id == mid for medicine in medicines):
                await self._manager.async_remove_medicine(mid)
            return self._update_entry()

        return self.async_show_form(
            step_id="remove_medicine", data_schema=_medicine_picker(medicines)
        )

    # --- CONTACTS ---
    async def async_step_add_contact(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        errors = {}
        if user_input is not None:
            data = {key: value for key, value in user_input.items() if value != ""}
            try:
                await self._manager.async_add_contact(data)
            except vol.Invalid as err:
                _LOGGER.debug("Rejected contact: %s", err)
                errors["base"] = "invalid_contact"
            else:
                return self._update_entry()

        return self.async_show_form(step_id="add_contact", data_schema=CONTACT_FORM, errors=errors)

    async def async_step_remove_contact(self, user_input: dict[str, Any] | None = None) -> FlowResult:
        contacts = await self._manager.async_contacts()
        if not contacts:
            return self.async_abort(reason="no_contacts")

        if user_input is not None:
            await self._manager.async_remove_contact(user_input[CONF_CONTACT_ID])
            return self._update_entry()

        options = [
            SelectOptionDict(value=contact.id, label=f"{contact.name} ({contact.phone_number})")
            for contact in contacts
        ]
        schema = vol.Schema({
            vol.Required(CONF_CONTACT_ID): SelectSelector(
                SelectSelectorConfig(options=options)
            )
        })
        return self.async_show_form(step_id="remove_contact", data_schema=schema)

    @callback
    def _update_entry(self) -> FlowResult:
        """Finish the flow keeping the current settings."""
        return self.async_create_entry(title="", data=dict(self.config_entry.options))


def _medicine_picker(medicines) -> vol.Schema:
    options = [
        SelectOptionDict(value=medicine.id, label=medicine.name)
        for medicine in medicines
    ]
    return vol.Schema({
        vol.Required(CONF_MEDICINE_ID): SelectSelector(
            SelectSelectorConfig(options=options)
        )
    })
