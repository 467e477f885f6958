"""
Configuration flow for the HuiHuTong integration.

This module handles OpenID setup and reconfiguration, plus an options
flow for preferences and the utility room selection.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import voluptuous as vol
from homeassistant.config_entries import ConfigFlow, ConfigFlowResult, OptionsFlow
from homeassistant.core import callback
from homeassistant.helpers.httpx_client import get_async_client

from . import api
from .const import (
    APARTMENTS,
    COLOR_MODES,
    CONF_APARTMENT,
    CONF_BUILDING,
    CONF_COLOR_MODE,
    CONF_FLOOR,
    CONF_OPENID,
    CONF_REFRESH_INTERVAL,
    CONF_ROOM,
    CONF_SCALE_FACTOR,
    CONF_STARTUP_VIEW,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_SCALE_FACTOR,
    DOMAIN,
    ERROR_API_ERROR,
    ERROR_CANNOT_CONNECT,
    ERROR_INVALID_AUTH,
    ERROR_INVALID_OPENID,
    ERROR_NO_ENTRIES,
    ERROR_TIMEOUT,
    ERROR_UNKNOWN,
    MAX_REFRESH_INTERVAL,
    MAX_SCALE_FACTOR,
    MIN_REFRESH_INTERVAL,
    MIN_SCALE_FACTOR,
    STARTUP_VIEWS,
)

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry

    from . import HuiHuTongRuntimeData
    from .models import DirectoryNode

_LOGGER = logging.getLogger(__name__)

OPENID_SCHEMA = vol.Schema({vol.Required(CONF_OPENID): str})


def error_key(err: Exception) -> str:
    """Map an exception raised by the API client to a form error key."""
    if isinstance(err, api.HuiHuTongTimeoutError):
        return ERROR_TIMEOUT
    if isinstance(err, api.HuiHuTongTransportError):
        return ERROR_CANNOT_CONNECT
    if isinstance(err, api.HuiHuTongMissingIdentityError) or api.is_auth_failure(err):
        return ERROR_INVALID_AUTH
    if isinstance(err, api.HuiHuTongApiClientError):
        return ERROR_API_ERROR
    return ERROR_UNKNOWN


async def _async_validate_openid(flow: ConfigFlow, openid: str) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not openid:
        errors["base"] = ERROR_INVALID_OPENID
        return errors

    try:
        session = get_async_client(flow.hass)
        await api.async_certificate_login(session, openid)
        _LOGGER.info("Successfully exchanged OpenID with HuiHuTong API")
    except api.HuiHuTongApiClientError as err:
        errors["base"] = error_key(err)
        _LOGGER.warning("OpenID validation failed (%s): %s", errors["base"], err)
    except Exception:
        _LOGGER.exception("Unexpected error during OpenID validation (%s)", ERROR_UNKNOWN)
        errors["base"] = ERROR_UNKNOWN
    return errors


class HuiHuTongConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle configuration flow for the HuiHuTong integration."""

    VERSION = 1

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> OptionsFlow:
        """Return the options flow handler."""
        return HuiHuTongOptionsFlow()

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """
        Handle the initial step of the config flow.

        Args:
            user_input: User input data containing the OpenID.

        Returns:
            ConfigFlowResult indicating the next step or errors.

        """
        errors: dict[str, str] = {}

        if user_input is not None:
            openid = user_input[CONF_OPENID].strip()
            errors = await _async_validate_openid(self, openid)
            if not errors:
                await self.async_set_unique_id(openid)
                self._abort_if_unique_id_configured()
                return self.async_create_entry(
                    title=f"HuiHuTong ({openid[:6]}...)",
                    data={CONF_OPENID: openid},
                )

        return self.async_show_form(
            step_id="user", data_schema=OPENID_SCHEMA, errors=errors
        )

    async def async_step_reconfigure(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Replace the OpenID of an existing entry."""
        errors: dict[str, str] = {}
        entry = self._get_reconfigure_entry()

        if user_input is not None:
            openid = user_input[CONF_OPENID].strip()
            errors = await _async_validate_openid(self, openid)
            if not errors:
                await self.async_set_unique_id(openid)
                if openid != entry.unique_id:
                    self._abort_if_unique_id_configured()
                return self.async_update_reload_and_abort(
                    entry,
                    unique_id=openid,
                    title=f"HuiHuTong ({openid[:6]}...)",
                    data_updates={CONF_OPENID: openid},
                )

        return self.async_show_form(
            step_id="reconfigure",
            data_schema=self.add_suggested_values_to_schema(
                OPENID_SCHEMA, {CONF_OPENID: entry.data.get(CONF_OPENID, "")}
            ),
            errors=errors,
        )


class HuiHuTongOptionsFlow(OptionsFlow):
    """Preferences and cascading room selection."""

    def __init__(self) -> None:
        """Initialize the options flow."""
        self._apartment_id = 0
        self._nodes: dict[str, DirectoryNode] = {}

    @property
    def _runtime(self) -> HuiHuTongRuntimeData:
        return self.hass.data[DOMAIN][self.config_entry.entry_id]

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Choose what to change."""
        return self.async_show_menu(step_id="init", menu_options=["preferences", "apartment"])

    async def async_step_preferences(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Edit refresh interval, scale, startup view and color mode."""
        if user_input is not None:
            return self.async_create_entry(data={**self.config_entry.options, **user_input})

        preferences = self._runtime.store.record.preferences
        schema = vol.Schema(
            {
                vol.Required(
                    CONF_REFRESH_INTERVAL,
                    default=preferences.refresh_interval or DEFAULT_REFRESH_INTERVAL,
                ): vol.All(
                    vol.Coerce(int),
                    vol.Range(min=MIN_REFRESH_INTERVAL, max=MAX_REFRESH_INTERVAL),
                ),
                vol.Required(
                    CONF_SCALE_FACTOR,
                    default=preferences.scale_factor or DEFAULT_SCALE_FACTOR,
                ): vol.All(
                    vol.Coerce(float),
                    vol.Range(min=MIN_SCALE_FACTOR, max=MAX_SCALE_FACTOR),
                ),
                vol.Required(
                    CONF_STARTUP_VIEW, default=preferences.startup_view
                ): vol.In(STARTUP_VIEWS),
                vol.Required(CONF_COLOR_MODE, default=preferences.color_mode): vol.In(
                    COLOR_MODES
                ),
            }
        )
        return self.async_show_form(step_id="preferences", data_schema=schema)

    async def async_step_apartment(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Pick the apartment complex."""
        if user_input is not None:
            self._apartment_id = int(user_input[CONF_APARTMENT])
            await self._runtime.directory.async_select_apartment(self._apartment_id)
            return await self.async_step_building()

        choices = {str(key): name for key, name in APARTMENTS.items()}
        schema = vol.Schema({vol.Required(CONF_APARTMENT): vol.In(choices)})
        return self.async_show_form(step_id="apartment", data_schema=schema)

    async def async_step_building(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Pick the building."""
        directory = self._runtime.directory
        if user_input is not None:
            await directory.async_select_building(self._nodes[user_input[CONF_BUILDING]])
            return await self.async_step_floor()

        return await self._async_show_nodes(
            "building",
            CONF_BUILDING,
            lambda: directory.async_list_buildings(self._apartment_id),
        )

    async def async_step_floor(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Pick the floor."""
        directory = self._runtime.directory
        if user_input is not None:
            await directory.async_select_floor(self._nodes[user_input[CONF_FLOOR]])
            return await self.async_step_room()

        building_id = directory.selection.building_id
        return await self._async_show_nodes(
            "floor",
            CONF_FLOOR,
            lambda: directory.async_list_floors(self._apartment_id, building_id),
        )

    async def async_step_room(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Pick the room and finish."""
        directory = self._runtime.directory
        if user_input is not None:
            await directory.async_select_room(self._nodes[user_input[CONF_ROOM]])
            return self.async_create_entry(data=dict(self.config_entry.options))

        selection = directory.selection
        return await self._async_show_nodes(
            "room",
            CONF_ROOM,
            lambda: directory.async_list_rooms(
                self._apartment_id, selection.building_id, selection.floor_id
            ),
        )

    async def _async_show_nodes(
        self, step_id: str, key: str, fetch: Any
    ) -> ConfigFlowResult:
        errors: dict[str, str] = {}
        nodes: list[DirectoryNode] = []
        try:
            nodes = await fetch()
        except api.HuiHuTongApiClientError as err:
            errors["base"] = error_key(err)
            _LOGGER.warning("Directory lookup failed (%s): %s", errors["base"], err)
        else:
            if not nodes:
                errors["base"] = ERROR_NO_ENTRIES

        self._nodes = {node.id: node for node in nodes}
        schema = vol.Schema(
            {vol.Required(key): vol.In({node.id: node.name for node in nodes})}
        )
        return self.async_show_form(step_id=step_id, data_schema=schema, errors=errors)
