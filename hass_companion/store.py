"""Device-side entity store driven by messages from the gateway."""
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ValidationError

from hass_companion.channel import MessageChannel
from hass_companion.models import (
    DEVICE_MESSAGES,
    AddMessage,
    ApiMessage,
    ChangeMessage,
    ClearMessage,
    EntitiesMessage,
    Entity,
    PersistedEntity,
    SettingMessage,
    Settings,
    UnknownMessageError,
    as_bool,
    parse_message,
)
from hass_companion.renderer import EntityListRenderer, Row

logger = logging.getLogger(__name__)

Emitter = Callable[[Union[BaseModel, Dict[str, Any]]], Awaitable[None]]

UNAVAILABLE_TEXT = "unavailable"


def load_settings(path: Union[str, Path]) -> Settings:
    """Load the device settings, falling back to defaults when unreadable"""
    try:
        return Settings.model_validate_json(Path(path).read_text())
    except (OSError, ValidationError) as e:
        logger.error(f"Error loading settings from {path}: {e}")
        return Settings()


def save_settings(settings: Settings, path: Union[str, Path]) -> None:
    Path(path).write_text(settings.model_dump_json(indent=2))
    logger.debug(f"Saved settings to {path}")


class EntityStore:
    """
    Entity and category lists as seen by the companion device

    Only the operations below mutate the lists; readers get tuples. Every
    mutation is keyed by entity id so the store stays correct whatever order
    the gateway's responses arrive in.
    """

    def __init__(
        self,
        send: Emitter,
        settings: Optional[Settings] = None,
        renderer: Optional[EntityListRenderer] = None,
    ):
        self.send = send
        self.settings = settings or Settings()
        self.renderer = renderer or EntityListRenderer()
        self.available = False
        self.address_text = UNAVAILABLE_TEXT
        self._entities: List[Entity] = []
        self._categories: List[str] = []

    @property
    def entities(self) -> Tuple[Entity, ...]:
        return tuple(self._entities)

    @property
    def categories(self) -> Tuple[str, ...]:
        return tuple(self._categories)

    @property
    def rows(self) -> List[Row]:
        return self.renderer.rows

    def get(self, entity_id: str) -> Optional[Entity]:
        for entity in self._entities:
            if entity.id == entity_id:
                return entity
        return None

    # Mutations

    def clear(self) -> None:
        self._entities = []
        self.settings.entities = []
        self.renderer.reset()
        self.renderer.render(self._entities)

    def add(self, entity: Entity) -> None:
        self._entities.append(entity)
        self.settings.entities.append(PersistedEntity(name=entity.id))
        if entity.domain not in self._categories:
            self._categories.append(entity.domain)
        self.renderer.render(self._entities)

    def change(self, entity_id: str, state: str) -> bool:
        """Update an entity's state in place; unknown ids are ignored"""
        entity = self.get(entity_id)
        if entity is None:
            logger.debug(f"Ignoring change for unknown entity {entity_id}")
            return False
        entity.state = state
        self.renderer.render(self._entities)
        return True

    def set_api_status(self, message: ApiMessage) -> None:
        self.available = message.available
        if self.available:
            self.address_text = message.name or ""
        else:
            self.address_text = message.value

    # Channel

    def attach(self, channel: MessageChannel) -> None:
        """Wire this store to the device end of a channel"""
        channel.on_open = self.on_open
        channel.on_close = self.on_close
        channel.on_message = self.handle_message

    async def on_open(self) -> None:
        """Send the persisted settings so the gateway can configure itself"""
        logger.info("Socket open")
        await self.send(SettingMessage(key="url", value=self.settings.url))
        await self.send(SettingMessage(key="port", value=self.settings.port))
        await self.send(SettingMessage(key="token", value=self.settings.token))
        await self.send(EntitiesMessage(value=list(self.settings.entities)))
        await self.send(SettingMessage(key="force", value=self.settings.force))

    async def on_close(self) -> None:
        logger.info("Socket closed")

    async def handle_message(self, data: Dict[str, Any]) -> None:
        try:
            message = parse_message(data, DEVICE_MESSAGES)
        except (UnknownMessageError, ValidationError) as e:
            logger.debug(f"Ignoring message {data}: {e}")
            return

        if isinstance(message, ClearMessage):
            self.clear()
        elif isinstance(message, AddMessage):
            self.add(Entity(id=message.id, name=message.name, state=message.state))
        elif isinstance(message, ChangeMessage):
            self.change(message.id, message.state)
        elif isinstance(message, ApiMessage):
            self.set_api_status(message)
        elif isinstance(message, SettingMessage):
            await self.store_setting(message)

    async def store_setting(self, message: SettingMessage) -> None:
        """Persist a configuration value and echo it back as acknowledgement"""
        value: Union[bool, str]
        if message.value is None:
            value = Settings.model_fields[message.key].default
        elif message.key == "force":
            value = as_bool(message.value)
        else:
            value = str(message.value)
        setattr(self.settings, message.key, value)
        await self.send(SettingMessage(key=message.key, value=value))

    # User actions

    def tap(self, index: int) -> Optional[Row]:
        return self.renderer.tap(index)

    async def request_toggle(self, index: int) -> bool:
        """Ask the gateway to flip the entity shown at ``index``"""
        if not 0 <= index < len(self._entities):
            return False
        await self.send(self.renderer.change_request(self._entities[index]))
        return True
