"""Host-side handling of messages from the companion device."""
import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from hass_companion.channel import MessageChannel
from hass_companion.hass import EntityGateway
from hass_companion.models import (
    HOST_MESSAGES,
    ChangeRequest,
    ClearMessage,
    EntitiesMessage,
    SettingMessage,
    UnknownMessageError,
    as_bool,
    parse_message,
)

logger = logging.getLogger(__name__)


class HostHandler:
    """Routes device messages to the gateway."""

    def __init__(self, gateway: EntityGateway, channel: Optional[MessageChannel] = None):
        self.gateway = gateway
        self.channel = channel
        if channel is not None:
            self.attach(channel)

    def attach(self, channel: MessageChannel) -> None:
        self.channel = channel
        channel.on_open = self.on_open
        channel.on_close = self.on_close
        channel.on_message = self.handle_message

    async def on_open(self) -> None:
        logger.info("Socket open")
        await self.gateway.fetch_server_status()

    async def on_close(self) -> None:
        logger.info("Socket closed")

    async def push_setting(self, key: str, value: Optional[Union[bool, str]]) -> None:
        """
        Send a setting to the device

        The device persists it and echoes it back; the gateway applies the
        value only when the echo arrives.
        """
        if self.channel is None:
            logger.warning(f"No channel attached, cannot push setting {key}")
            return
        await self.channel.send(SettingMessage(key=key, value=value))

    async def handle_message(self, data: Dict[str, Any]) -> None:
        try:
            message = parse_message(data, HOST_MESSAGES)
        except (UnknownMessageError, ValidationError) as e:
            logger.debug(f"Ignoring message {data}: {e}")
            return

        if isinstance(message, SettingMessage):
            self.apply_setting(message)
        elif isinstance(message, EntitiesMessage):
            # Keep the device list as it is while the server is unreachable
            if not await self.gateway.fetch_server_status():
                logger.warning("Home Assistant unavailable, keeping the current entity list")
                return
            await self.gateway.refresh([entity.name for entity in message.value])
        elif isinstance(message, ChangeRequest):
            await self.gateway.change_entity(message.id, message.action)
        elif isinstance(message, ClearMessage):
            logger.info("Device requested an entity reset")
            await self.gateway.emit(ClearMessage())

    def apply_setting(self, message: SettingMessage) -> None:
        config = self.gateway.config
        value = message.value
        if message.key == "url":
            config.change_url(None if value is None else str(value))
        elif message.key == "port":
            config.change_port(None if value is None else str(value))
        elif message.key == "token":
            config.change_token(None if value is None else str(value))
        elif message.key == "force":
            config.change_force(None if value is None else as_bool(value))
        logger.debug(f"Applied {message.key}: {config!r}")
