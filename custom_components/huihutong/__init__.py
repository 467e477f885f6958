from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from homeassistant.const import Platform
from homeassistant.helpers.storage import Store

from .api import create_session_client
from .const import (
    CONF_COLOR_MODE,
    CONF_OPENID,
    CONF_REFRESH_INTERVAL,
    CONF_SCALE_FACTOR,
    CONF_STARTUP_VIEW,
    DOMAIN,
    STORAGE_VERSION,
)
from .coordinator import HuiHuTongBalanceCoordinator
from .credential import CredentialManager
from .directory import DirectoryAndBalanceService
from .polling import PollingController
from .session_store import InvalidPreferenceError, SessionStore

if TYPE_CHECKING:
    import httpx
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

_LOGGER = logging.getLogger(__name__)

PLATFORMS = [Platform.BUTTON, Platform.IMAGE, Platform.SENSOR]


@dataclass
class HuiHuTongRuntimeData:
    """Objects shared by the platforms of one config entry."""

    session: httpx.AsyncClient
    store: SessionStore
    credentials: CredentialManager
    controller: PollingController
    directory: DirectoryAndBalanceService
    balance_coordinator: HuiHuTongBalanceCoordinator


async def async_apply_options(store: SessionStore, options: dict) -> None:
    """Push config entry options into the session store.

    Invalid values are logged and skipped; the stored value is kept.
    """
    setters = (
        (CONF_REFRESH_INTERVAL, store.async_set_refresh_interval),
        (CONF_SCALE_FACTOR, store.async_set_scale_factor),
        (CONF_STARTUP_VIEW, store.async_set_startup_view),
        (CONF_COLOR_MODE, store.async_set_color_mode),
    )
    for key, setter in setters:
        if key not in options:
            continue
        try:
            await setter(options[key])
        except InvalidPreferenceError as err:
            _LOGGER.warning("Ignoring option %s: %s", key, err)


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Setting up HuiHuTong integration for entry %s", entry.entry_id)

    if CONF_OPENID not in entry.data:
        _LOGGER.error("Missing OpenID in configuration for entry %s", entry.entry_id)
        return False

    session = create_session_client(hass)
    store = SessionStore(Store(hass, STORAGE_VERSION, f"{DOMAIN}.{entry.entry_id}"))
    await store.async_load()
    await store.async_set_identity_token(entry.data[CONF_OPENID])
    await async_apply_options(store, dict(entry.options))

    credentials = CredentialManager(session, store)
    controller = PollingController(session, store, credentials)
    directory = DirectoryAndBalanceService(session, store, credentials)
    balance_coordinator = HuiHuTongBalanceCoordinator(hass, directory, store)

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = HuiHuTongRuntimeData(
        session=session,
        store=store,
        credentials=credentials,
        controller=controller,
        directory=directory,
        balance_coordinator=balance_coordinator,
    )
    entry.async_on_unload(entry.add_update_listener(async_update_options))

    await balance_coordinator.async_refresh()
    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    _LOGGER.info("Successfully set up HuiHuTong integration for entry %s", entry.entry_id)
    return True


async def async_update_options(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Apply changed options to the running entry."""
    runtime: HuiHuTongRuntimeData = hass.data[DOMAIN][entry.entry_id]
    await async_apply_options(runtime.store, dict(entry.options))


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Unloading HuiHuTong integration for entry %s", entry.entry_id)

    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if not unload_ok:
        _LOGGER.warning("Failed to unload some platforms for entry %s", entry.entry_id)
        return False

    runtime: HuiHuTongRuntimeData | None = hass.data.get(DOMAIN, {}).pop(
        entry.entry_id, None
    )
    if runtime is not None:
        runtime.controller.close()
        runtime.credentials.close()
        runtime.balance_coordinator.close()
        _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)
    return True
