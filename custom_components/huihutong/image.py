"""Access code image entity for the HuiHuTong integration.

The entity is the "view" of the access code: adding it to Home Assistant
starts the polling controller and removing it stops it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from homeassistant.components.image import ImageEntity

from .const import DOMAIN, EVENT_ACCESS_CODE_DISPLAYED

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant
    from homeassistant.helpers.entity_platform import AddEntitiesCallback

    from .polling import PollingController

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the access code image entity."""
    runtime = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([HuiHuTongAccessCodeImage(hass, entry, runtime.controller)])


class HuiHuTongAccessCodeImage(ImageEntity):
    """Image entity showing the current access QR code."""

    _attr_content_type = "image/png"
    _attr_has_entity_name = True
    _attr_should_poll = False

    def __init__(
        self,
        hass: HomeAssistant,
        entry: ConfigEntry,
        controller: PollingController,
    ) -> None:
        """Initialize the access code image entity."""
        super().__init__(hass)
        self._entry = entry
        self._controller = controller
        self._attr_unique_id = f"{entry.entry_id}_access_code"
        self._attr_name = "Access code"
        self._unsubs: list[Any] = []

    @property
    def available(self) -> bool:
        """Return True when an access code has been rendered."""
        return self._controller.image is not None

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        """Return refresh cycle details."""
        return {
            "refresh_state": self._controller.state.value,
            "status": self._controller.status_message,
            "error": self._controller.error_message,
            "next_refresh_in": self._controller.next_refresh_in,
        }

    async def async_image(self) -> bytes | None:
        """Return the rendered access code."""
        return self._controller.image

    async def async_added_to_hass(self) -> None:
        """Start refreshing the access code while the entity exists."""
        await super().async_added_to_hass()
        self._unsubs.append(
            self._controller.async_add_listener(self._handle_controller_update)
        )
        self._unsubs.append(
            self._controller.async_add_display_listener(self._handle_displayed)
        )
        self._controller.start()

    async def async_will_remove_from_hass(self) -> None:
        """Stop refreshing when the entity goes away."""
        await super().async_will_remove_from_hass()
        for unsub in self._unsubs:
            unsub()
        self._unsubs.clear()
        self._controller.stop()

    def _handle_controller_update(self) -> None:
        if self._controller.last_updated != self._attr_image_last_updated:
            self._attr_image_last_updated = self._controller.last_updated
        self.async_write_ha_state()

    def _handle_displayed(self) -> None:
        _LOGGER.debug("Access code displayed for entry %s", self._entry.entry_id)
        self.hass.bus.async_fire(
            EVENT_ACCESS_CODE_DISPLAYED, {"entry_id": self._entry.entry_id}
        )
