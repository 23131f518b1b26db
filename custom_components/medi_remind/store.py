"""Document storage for MediRemind.

Medicines, contacts, the intake log and emergency alerts are kept as plain
documents grouped in collections. The persistent store is backed by Home
Assistant's JSON storage; when that cannot be loaded (or demo mode is
switched on) an in-memory store is used instead. It survives reloads of the
config entry but everything is lost on restart.
"""
from __future__ import annotations

import copy
import logging
from typing import Any

from homeassistant.components import persistent_notification
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.storage import Store

from .const import DATA_DEMO_STORES, DOMAIN, STORAGE_KEY, STORAGE_VERSION

_LOGGER = logging.getLogger(__name__)


class DocumentStore:
    """In-memory collections of documents keyed by id."""

    demo_mode = True

    def __init__(self) -> None:
        self._data: dict[str, dict[str, dict[str, Any]]] = {}

    async def async_load(self) -> None:
        """Load existing documents."""

    async def async_get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        document = self._data.get(collection, {}).get(doc_id)
        return copy.deepcopy(document) if document is not None else None

    async def async_set(self, collection: str, doc_id: str, document: dict[str, Any]) -> None:
        self._data.setdefault(collection, {})[doc_id] = copy.deepcopy(document)
        await self._async_changed()

    async def async_delete(self, collection: str, doc_id: str) -> bool:
        documents = self._data.get(collection, {})
        if doc_id not in documents:
            return False
        del documents[doc_id]
        await self._async_changed()
        return True

    async def async_query(self, collection: str, **filters: Any) -> list[dict[str, Any]]:
        """Return the documents whose fields equal every given filter."""
        return [
            copy.deepcopy(document)
            for document in self._data.get(collection, {}).values()
            if all(document.get(key) == value for key, value in filters.items())
        ]

    async def _async_changed(self) -> None:
        """Hook for subclasses that persist."""


class DemoDocumentStore(DocumentStore):
    """Local-only store used when the backend is unavailable."""


class PersistentDocumentStore(DocumentStore):
    """Documents saved through Home Assistant's storage helper."""

    demo_mode = False

    def __init__(self, hass: HomeAssistant, entry_id: str) -> None:
        super().__init__()
        self._store: Store[dict[str, Any]] = Store(
            hass, STORAGE_VERSION, f"{STORAGE_KEY}.{entry_id}"
        )

    async def async_load(self) -> None:
        data = await self._store.async_load()
        self._data = data or {}

    async def _async_changed(self) -> None:
        await self._store.async_save(self._data)


async def async_open_store(
    hass: HomeAssistant, entry_id: str, demo_mode: bool = False
) -> DocumentStore:
    """Open the entry's store, falling back to demo mode if it cannot load."""
    if demo_mode:
        _LOGGER.info("Demo mode enabled, medicines are kept in memory only")
        return _demo_store(hass, entry_id)

    store = PersistentDocumentStore(hass, entry_id)
    try:
        await store.async_load()
    except (HomeAssistantError, OSError, ValueError) as err:
        _LOGGER.warning("Could not load medicine storage, running in demo mode: %s", err)
        persistent_notification.async_create(
            hass,
            "Medicine data could not be loaded. Changes are kept until the next "
            "restart only.",
            title="MediRemind demo mode",
            notification_id=f"{DOMAIN}_demo_{entry_id}",
        )
        return _demo_store(hass, entry_id)
    return store


def _demo_store(hass: HomeAssistant, entry_id: str) -> DemoDocumentStore:
    """The entry's in-memory store, kept until Home Assistant restarts."""
    stores: dict[str, DemoDocumentStore] = hass.data.setdefault(DATA_DEMO_STORES, {})
    return stores.setdefault(entry_id, DemoDocumentStore())


def async_drop_demo_store(hass: HomeAssistant, entry_id: str) -> None:
    """Forget the demo documents of a removed entry."""
    hass.data.get(DATA_DEMO_STORES, {}).pop(entry_id, None)
