"""The MediRemind integration."""
from __future__ import annotations

import logging

import voluptuous as vol

from homeassistant.components import persistent_notification
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EVENT_HOMEASSISTANT_STOP
from homeassistant.core import (
    Event, HomeAssistant, ServiceCall, ServiceResponse, SupportsResponse, callback,
)
from homeassistant.exceptions import HomeAssistantError, ServiceValidationError
import homeassistant.helpers.config_validation as cv

from .const import (
    ATTR_ALERT_ID, ATTR_ENTRY_ID, ATTR_IMAGE_PATH, ATTR_MESSAGE, ATTR_MINUTES,
    COLLECTION_MEDICINES, CONF_DEMO_MODE, CONF_MEDICINE_ID, DOMAIN, PLATFORMS,
    SERVICE_ADD, SERVICE_REMOVE, SERVICE_RESET_STREAK, SERVICE_RESOLVE_SOS,
    SERVICE_SCAN_LABEL, SERVICE_SKIP, SERVICE_SNOOZE, SERVICE_TAKE,
    SERVICE_TRIGGER_SOS, SERVICE_UPDATE,
)
from .emergency import async_resolve_sos, async_trigger_sos
from .label_scanner import LabelScanError, async_scan_label
from .manager import ReminderManager
from .store import async_drop_demo_store, async_open_store

_LOGGER = logging.getLogger(__name__)

CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)

ATTR_REMINDER_ID = "reminder_id"

RESPONSE_SCHEMA = vol.Schema({
    vol.Required(CONF_MEDICINE_ID): cv.string,
    vol.Optional(ATTR_REMINDER_ID): cv.string,
})
SNOOZE_SCHEMA = RESPONSE_SCHEMA.extend({
    vol.Optional(ATTR_MINUTES): vol.All(vol.Coerce(int), vol.Range(min=1, max=1440)),
})
MEDICINE_ID_SCHEMA = vol.Schema({vol.Required(CONF_MEDICINE_ID): cv.string})
ADD_SCHEMA = vol.Schema(
    {vol.Optional(ATTR_ENTRY_ID): cv.string}, extra=vol.ALLOW_EXTRA
)
UPDATE_SCHEMA = vol.Schema(
    {vol.Required(CONF_MEDICINE_ID): cv.string}, extra=vol.ALLOW_EXTRA
)
SOS_SCHEMA = vol.Schema({
    vol.Optional(ATTR_ENTRY_ID): cv.string,
    vol.Optional(ATTR_MESSAGE): cv.string,
})
RESOLVE_SOS_SCHEMA = vol.Schema({
    vol.Optional(ATTR_ENTRY_ID): cv.string,
    vol.Required(ATTR_ALERT_ID): cv.string,
})
SCAN_SCHEMA = vol.Schema({vol.Required(ATTR_IMAGE_PATH): cv.string})


def _get_manager(hass: HomeAssistant, entry_id: str | None) -> ReminderManager:
    managers: dict[str, ReminderManager] = hass.data.get(DOMAIN, {})
    if entry_id:
        if entry_id not in managers:
            raise ServiceValidationError(f"MediRemind entry {entry_id} is not loaded")
        return managers[entry_id]
    if len(managers) != 1:
        raise ServiceValidationError("Specify entry_id, more than one user is configured")
    return next(iter(managers.values()))


async def _async_manager_for_medicine(hass: HomeAssistant, medicine_id: str) -> ReminderManager:
    for manager in hass.data.get(DOMAIN, {}).values():
        if await manager.store.async_get(COLLECTION_MEDICINES, medicine_id) is not None:
            return manager
    raise ServiceValidationError(f"Unknown medicine: {medicine_id}")


async def async_setup(hass: HomeAssistant, config: dict) -> bool:
    """Set up the MediRemind services."""

    # 1. Responses
    async def handle_take_medicine(call: ServiceCall) -> None:
        medicine_id = call.data[CONF_MEDICINE_ID]
        manager = await _async_manager_for_medicine(hass, medicine_id)
        await manager.responses.async_on_taken(medicine_id, call.data.get(ATTR_REMINDER_ID))

    async def handle_skip_medicine(call: ServiceCall) -> None:
        medicine_id = call.data[CONF_MEDICINE_ID]
        manager = await _async_manager_for_medicine(hass, medicine_id)
        await manager.responses.async_on_skipped(medicine_id, call.data.get(ATTR_REMINDER_ID))

    async def handle_snooze_medicine(call: ServiceCall) -> ServiceResponse:
        medicine_id = call.data[CONF_MEDICINE_ID]
        manager = await _async_manager_for_medicine(hass, medicine_id)
        reminder = await manager.responses.async_on_snoozed(
            medicine_id, call.data.get(ATTR_MINUTES), call.data.get(ATTR_REMINDER_ID)
        )
        return {"reminder_id": reminder.reminder_id, "fire_time": reminder.fire_time.isoformat()}

    async def handle_reset_streak(call: ServiceCall) -> None:
        medicine_id = call.data[CONF_MEDICINE_ID]
        manager = await _async_manager_for_medicine(hass, medicine_id)
        await manager.responses.async_reset_streak(medicine_id)

    # 2. Medicine CRUD
    async def handle_add_medicine(call: ServiceCall) -> ServiceResponse:
        data = dict(call.data)
        manager = _get_manager(hass, data.pop(ATTR_ENTRY_ID, None))
        try:
            medicine = await manager.async_add_medicine(data)
        except vol.Invalid as err:
            raise ServiceValidationError(f"Invalid medicine: {err}") from err
        return {CONF_MEDICINE_ID: medicine.id}

    async def handle_update_medicine(call: ServiceCall) -> None:
        data = dict(call.data)
        medicine_id = data.pop(CONF_MEDICINE_ID)
        manager = await _async_manager_for_medicine(hass, medicine_id)
        try:
            await manager.async_update_medicine(medicine_id, data)
        except vol.Invalid as err:
            raise ServiceValidationError(f"Invalid medicine: {err}") from err

    async def handle_remove_medicine(call: ServiceCall) -> None:
        medicine_id = call.data[CONF_MEDICINE_ID]
        manager = await _async_manager_for_medicine(hass, medicine_id)
        await manager.async_remove_medicine(medicine_id)

    # 3. Emergency
    async def handle_trigger_sos(call: ServiceCall) -> ServiceResponse:
        manager = _get_manager(hass, call.data.get(ATTR_ENTRY_ID))
        alert = await async_trigger_sos(manager, call.data.get(ATTR_MESSAGE))
        return {ATTR_ALERT_ID: alert["id"], "delivered": alert["delivered"]}

    async def handle_resolve_sos(call: ServiceCall) -> None:
        manager = _get_manager(hass, call.data.get(ATTR_ENTRY_ID))
        try:
            await async_resolve_sos(manager, call.data[ATTR_ALERT_ID])
        except HomeAssistantError as err:
            raise ServiceValidationError(str(err)) from err

    # 4. Label scanning
    async def handle_scan_label(call: ServiceCall) -> ServiceResponse:
        try:
            scan = await async_scan_label(hass, call.data[ATTR_IMAGE_PATH])
        except LabelScanError as err:
            _LOGGER.info("Label scan failed: %s", err)
            persistent_notification.async_create(
                hass,
                "Could not read the label clearly. Please try again.",
                title="Medicine scan",
                notification_id=f"{DOMAIN}_scan",
            )
            return {"success": False, "error": str(err)}
        return {"success": True, **scan.as_dict()}

    hass.services.async_register(DOMAIN, SERVICE_TAKE, handle_take_medicine, RESPONSE_SCHEMA)
    hass.services.async_register(DOMAIN, SERVICE_SKIP, handle_skip_medicine, RESPONSE_SCHEMA)
    hass.services.async_register(
        DOMAIN, SERVICE_SNOOZE, handle_snooze_medicine, SNOOZE_SCHEMA,
        supports_response=SupportsResponse.OPTIONAL,
    )
    hass.services.async_register(
        DOMAIN, SERVICE_RESET_STREAK, handle_reset_streak, MEDICINE_ID_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_ADD, handle_add_medicine, ADD_SCHEMA,
        supports_response=SupportsResponse.OPTIONAL,
    )
    hass.services.async_register(DOMAIN, SERVICE_UPDATE, handle_update_medicine, UPDATE_SCHEMA)
    hass.services.async_register(DOMAIN, SERVICE_REMOVE, handle_remove_medicine, MEDICINE_ID_SCHEMA)
    hass.services.async_register(
        DOMAIN, SERVICE_TRIGGER_SOS, handle_trigger_sos, SOS_SCHEMA,
        supports_response=SupportsResponse.OPTIONAL,
    )
    hass.services.async_register(
        DOMAIN, SERVICE_RESOLVE_SOS, handle_resolve_sos, RESOLVE_SOS_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_SCAN_LABEL, handle_scan_label, SCAN_SCHEMA,
        supports_response=SupportsResponse.ONLY,
    )

    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up MediRemind from a config entry."""
    demo_mode = entry.options.get(CONF_DEMO_MODE, entry.data.get(CONF_DEMO_MODE, False))
    store = await async_open_store(hass, entry.entry_id, demo_mode)

    manager = ReminderManager(hass, entry, store)
    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = manager
    await manager.async_start()

    @callback
    def _async_stop(event: Event) -> None:
        manager.async_stop()

    entry.async_on_unload(manager.async_stop)
    entry.async_on_unload(hass.bus.async_listen_once(EVENT_HOMEASSISTANT_STOP, _async_stop))

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    entry.async_on_unload(entry.add_update_listener(update_listener))
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    unloaded = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unloaded:
        hass.data[DOMAIN].pop(entry.entry_id)
        if not hass.data[DOMAIN]:
            hass.data.pop(DOMAIN)
    return unloaded


async def update_listener(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload the integration when options are updated."""
    await hass.config_entries.async_reload(entry.entry_id)


async def async_remove_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Drop the demo documents of a deleted entry."""
    async_drop_demo_store(hass, entry.entry_id)
