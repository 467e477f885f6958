"""Button entity for the HuiHuTong integration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from homeassistant.components.button import ButtonEntity

from .const import DOMAIN

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .polling import PollingController


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the refresh button."""
    runtime = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([HuiHuTongRefreshButton(entry, runtime.controller)])


class HuiHuTongRefreshButton(ButtonEntity):
    """Manually refresh the access code."""

    _attr_has_entity_name = True
    _attr_icon = "mdi:refresh"

    def __init__(self, entry: ConfigEntry, controller: PollingController) -> None:
        """Initialize the refresh button."""
        self._controller = controller
        self._attr_unique_id = f"{entry.entry_id}_refresh"
        self._attr_name = "Refresh access code"

    async def async_press(self) -> None:
        """Start a new refresh cycle."""
        self._controller.refresh()
