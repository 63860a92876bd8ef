import asyncio
import functools
import logging
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, TypeVar, Union, cast

import httpx
from pydantic import BaseModel

from hass_companion.config import GatewayConfig
from hass_companion.models import (
    EXECUTABLE_STATE,
    AddMessage,
    ApiMessage,
    ChangeMessage,
    ClearMessage,
    entity_domain,
    is_executable,
)

# Set up logging
logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Awaitable[Any]])
Emitter = Callable[[Union[BaseModel, dict]], Awaitable[None]]

# Service namespace used to act on each domain
SERVICE_GROUPS: Mapping[str, str] = MappingProxyType({
    "switch": "switch",
    "light": "light",
    "group": "homeassistant",
    "script": "script",
    "automation": "automation",
    "button": "button",
    "cover": "cover",
})

# Executable domains always run the same action, whatever the caller asked for
ACTION_OVERRIDES: Mapping[str, str] = MappingProxyType({
    "script": "activate",
    "automation": "trigger",
    "button": "press",
})

# State an action is assumed to leave the entity in (force update mode only)
FORCED_STATES: Mapping[str, str] = MappingProxyType({
    "turn_on": "on",
    "turn_off": "off",
    "close_cover": "closed",
    "open_cover": "open",
})


class GatewayError(Exception):
    """Base class for errors raised by the entity gateway."""


class UnknownDomainError(GatewayError):
    """No service group is known for the entity's domain."""

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        self.domain = entity_domain(entity_id)
        super().__init__(f"No service group for domain '{self.domain}' ({entity_id})")


def requires_configuration(func: F) -> F:
    """
    Decorator guarding every gateway operation that talks to Home Assistant

    The call is skipped when the gateway is not configured. Request failures
    are logged and swallowed: a failed operation simply emits nothing.

    Args:
        func: The async gateway method to decorate

    Returns:
        Wrapped method returning None when skipped or failed
    """
    @functools.wraps(func)
    async def wrapper(self: "EntityGateway", *args: Any, **kwargs: Any) -> Any:
        name = func.__name__
        if not self.is_configured():
            logger.debug(f"[{name}] skipped, gateway is not configured")
            return None

        try:
            return await func(self, *args, **kwargs)
        except httpx.ConnectError:
            logger.error(f"[{name}] Connection error: Cannot connect to Home Assistant at {self.address()}")
        except httpx.TimeoutException:
            logger.error(f"[{name}] Timeout error: Home Assistant at {self.address()} did not respond in time")
        except httpx.HTTPStatusError as e:
            logger.warning(f"[{name}] HTTP error: {e.response.status_code} - {e.response.reason_phrase}")
        except httpx.RequestError as e:
            logger.error(f"[{name}] Error connecting to Home Assistant: {str(e)}")
        except GatewayError as e:
            logger.error(f"[{name}] {str(e)}")
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"[{name}] Unexpected response from Home Assistant: {str(e)}")
        return None

    return cast(F, wrapper)


class EntityGateway:
    """
    Host-side bridge between the Home Assistant REST API and the channel

    Results are never returned to the caller; they are emitted as channel
    messages (``add``, ``change`` and ``api``) through ``emit``.
    """

    def __init__(
        self,
        emit: Emitter,
        config: Optional[GatewayConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.emit = emit
        self.config = config or GatewayConfig()
        self._client = client

    # Configuration

    def configure(
        self,
        url: Optional[str] = None,
        port: Optional[str] = None,
        token: Optional[str] = None,
        force: Optional[bool] = None,
    ) -> None:
        """Replace the configuration; omitted fields reset to their defaults"""
        self.config.configure(url, port, token, force)
        logger.info(f"Gateway configured: {self.config!r}")

    def is_configured(self) -> bool:
        return self.config.is_configured()

    def address(self) -> str:
        return self.config.address()

    @staticmethod
    def is_executable(entity_id: str) -> bool:
        return is_executable(entity_id)

    # HTTP client

    async def get_client(self) -> httpx.AsyncClient:
        """Get a persistent httpx client for Home Assistant API calls"""
        if self._client is None:
            logger.debug("Creating new HTTP client")
            self._client = httpx.AsyncClient(timeout=10.0)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client when shutting down"""
        if self._client:
            logger.debug("Closing HTTP client")
            await self._client.aclose()
            self._client = None

    # Operations

    @requires_configuration
    async def fetch_entity(self, entity_id: str) -> None:
        """Read one entity's state and emit it as an ``add`` message"""
        client = await self.get_client()
        response = await client.get(
            f"{self.address()}/api/states/{entity_id}",
            headers=self.config.headers(),
        )
        response.raise_for_status()
        data = response.json()

        fetched_id = data["entity_id"]
        attributes = data.get("attributes") or {}
        message = AddMessage(
            id=fetched_id,
            name=attributes.get("friendly_name") or fetched_id,
            state=EXECUTABLE_STATE if is_executable(fetched_id) else str(data["state"]),
        )
        logger.debug(f"Fetched {fetched_id}: {message.state}")
        await self.emit(message)

    @requires_configuration
    async def fetch_server_status(self) -> bool:
        """Check the API, emit an ``api`` message with the outcome and return whether it is up"""
        client = await self.get_client()
        try:
            response = await client.get(f"{self.address()}/api/config", headers=self.config.headers())
            if response.status_code == 200:
                data = response.json()
                message = ApiMessage(value="ok", name=str(data.get("location_name", "")))
            else:
                logger.warning(f"[fetch_server_status] HTTP error: {response.status_code}")
                message = ApiMessage(value=f"Error {response.status_code}")
        except httpx.RequestError as e:
            logger.error(f"[fetch_server_status] Error connecting to Home Assistant: {str(e)}")
            message = ApiMessage(value="Connection error")
        except (ValueError, AttributeError) as e:
            logger.error(f"[fetch_server_status] Invalid response from Home Assistant: {str(e)}")
            message = ApiMessage(value="Invalid response")
        await self.emit(message)
        return message.available

    @requires_configuration
    async def change_entity(self, entity_id: str, requested_action: str) -> None:
        """
        Run an action against an entity and report the resulting state

        Args:
            entity_id: The entity to act on (e.g. 'cover.blinds')
            requested_action: The service to call (e.g. 'open_cover'); ignored for
                              scripts, automations and buttons, which always run
                              their own action

        In force update mode the state implied by the action is emitted as soon
        as the call succeeds. Otherwise only the state reported back by the
        server for this entity is emitted. Executable entities never emit a
        ``change``.
        """
        domain = entity_domain(entity_id)
        group = SERVICE_GROUPS.get(domain)
        if group is None:
            raise UnknownDomainError(entity_id)
        action = ACTION_OVERRIDES.get(domain, requested_action)

        client = await self.get_client()
        logger.info(f"Calling {group}.{action} on {entity_id}")
        response = await client.post(
            f"{self.address()}/api/services/{group}/{action}",
            headers=self.config.headers(),
            json={"entity_id": entity_id},
        )
        response.raise_for_status()

        if is_executable(entity_id):
            return

        if self.config.force_update:
            await self.emit(ChangeMessage(id=entity_id, state=FORCED_STATES.get(action, action)))
            return

        changed = response.json()
        if not isinstance(changed, list):
            logger.warning(f"[change_entity] Expected a list of changed states, got {type(changed).__name__}")
            return
        for element in changed:
            if element.get("entity_id") == entity_id:
                await self.emit(ChangeMessage(id=entity_id, state=str(element["state"])))

    async def refresh(self, entity_ids: Iterable[str]) -> None:
        """Rebuild the device list: emit ``clear``, then fetch every entity concurrently"""
        if not self.is_configured():
            logger.debug("[refresh] skipped, gateway is not configured")
            return
        await self.emit(ClearMessage())
        await asyncio.gather(*(self.fetch_entity(entity_id) for entity_id in entity_ids))
