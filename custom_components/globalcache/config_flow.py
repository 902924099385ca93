"""Config flow for Global Caché integration."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant.config_entries import ConfigFlow, ConfigFlowResult
from homeassistant.core import callback

from .api import GlobalCacheDiscovery
from .const import DOMAIN, MANUFACTURER
from .coordinator import async_get_coordinator
from .setup_flow import (
    DriverSetupRequest,
    FieldKind,
    RequestUserConfirmation,
    RequestUserInput,
    SetupAction,
    SetupComplete,
    SetupDriver,
    SetupError,
    SetupField,
    SetupFlow,
    UserConfirmationResponse,
    UserDataResponse,
)

_LOGGER = logging.getLogger(__name__)

STEP_SETUP = "setup"
STEP_RETRY = "retry"


def fields_schema(fields: list[SetupField]) -> vol.Schema:
    """Build the form schema of setup input fields.

    Label fields are descriptive only and not part of the schema.
    """
    schema: dict[vol.Marker, Any] = {}
    for setup_field in fields:
        if setup_field.kind is FieldKind.DROPDOWN:
            schema[vol.Required(setup_field.id, default=setup_field.value)] = vol.In(
                dict(setup_field.items)
            )
        elif setup_field.kind is FieldKind.TEXT:
            schema[vol.Optional(setup_field.id, default=setup_field.value or "")] = str
        elif setup_field.kind is FieldKind.CHECKBOX:
            schema[vol.Required(setup_field.id, default=bool(setup_field.value))] = bool
    return vol.Schema(schema)


def _field_description(setup_field: SetupField) -> str:
    if setup_field.kind is FieldKind.CHECKBOX:
        return f"{setup_field.id}: {setup_field.label}"
    return setup_field.label


def _to_setup_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class GlobalCacheConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Global Caché."""

    VERSION = 1

    def __init__(self) -> None:
        """Initialize the config flow."""
        self._setup: SetupFlow | None = None
        self._reconfigure = False

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the initial setup, replacing all configured devices."""
        await self.async_set_unique_id(DOMAIN)
        self._abort_if_unique_id_configured()
        return await self._async_start(reconfigure=False)

    async def async_step_reconfigure(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle adding or removing devices."""
        return await self._async_start(reconfigure=True)

    async def async_step_setup(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the input values of a setup screen."""
        values = {
            key: _to_setup_value(value) for key, value in (user_input or {}).items()
        }
        return await self._async_handle(UserDataResponse(values))

    async def async_step_retry(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the confirmation to start the discovery again."""
        return await self._async_handle(UserConfirmationResponse())

    @callback
    def async_remove(self) -> None:
        """Reset the setup flow when the config flow is closed."""
        if self._setup is not None:
            self._setup.abort()

    async def _async_start(self, reconfigure: bool) -> ConfigFlowResult:
        coordinator = await async_get_coordinator(self.hass)
        self._setup = SetupFlow(coordinator.store, GlobalCacheDiscovery())
        self._reconfigure = reconfigure
        return await self._async_handle(DriverSetupRequest(reconfigure=reconfigure))

    async def _async_handle(self, msg: SetupDriver) -> ConfigFlowResult:
        if self._setup is None:
            return self.async_abort(reason="other")
        try:
            action = await self._setup.async_handle(msg)
        except Exception:  # pylint: disable=broad-except
            _LOGGER.exception("Unexpected exception")
            return self.async_abort(reason="unknown")
        return self._async_show_action(action)

    @callback
    def _async_show_action(self, action: SetupAction) -> ConfigFlowResult:
        if isinstance(action, RequestUserInput):
            description = "\n".join(
                _field_description(setup_field)
                for setup_field in action.settings
                if setup_field.kind in (FieldKind.LABEL, FieldKind.CHECKBOX)
            )
            return self.async_show_form(
                step_id=STEP_SETUP,
                data_schema=fields_schema(action.settings),
                description_placeholders={
                    "title": action.title,
                    "description": description,
                },
            )
        if isinstance(action, RequestUserConfirmation):
            return self.async_show_form(
                step_id=STEP_RETRY,
                data_schema=vol.Schema({}),
                description_placeholders={
                    "title": action.title,
                    "description": action.header or "",
                },
            )
        if isinstance(action, SetupComplete):
            if self._reconfigure:
                return self.async_abort(reason="reconfigure_successful")
            return self.async_create_entry(title=MANUFACTURER, data={})
        if isinstance(action, SetupError):
            return self.async_abort(reason=action.error_type.value)
        raise ValueError(f"Unsupported setup action: {action}")
