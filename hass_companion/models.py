"""Pydantic models for entities, channel messages and persisted settings."""
from typing import Any, Dict, List, Literal, Optional, Type, Union
from pydantic import BaseModel, Field, field_validator

from hass_companion.config import DEFAULT_FORCE_UPDATE, DEFAULT_PORT, DEFAULT_TOKEN, DEFAULT_URL

# Domains whose entities are one-shot triggers rather than stateful devices
EXECUTABLE_DOMAINS = ("script", "automation", "button")

# State shown for executable entities in place of their server state
EXECUTABLE_STATE = "exe"


def entity_domain(entity_id: str) -> str:
    """Return the domain part of an entity id (``light.kitchen`` -> ``light``)"""
    return entity_id.split(".")[0]


def is_executable(entity_id: str) -> bool:
    """True if the entity id belongs to a script, automation or button"""
    return entity_id.startswith(EXECUTABLE_DOMAINS)


def as_bool(value: Union[bool, str]) -> bool:
    """Interpret a setting value that may arrive as a string"""
    if isinstance(value, str):
        return value.strip().lower() not in ("", "0", "false", "no", "off")
    return bool(value)


class Entity(BaseModel):
    """A Home Assistant entity as known to the companion device."""
    id: str = Field(description="Entity id in the form '<domain>.<object_id>'")
    name: str = Field(default="", description="Display name; falls back to the id")
    state: str = Field(default="", description="Last known state")

    def model_post_init(self, __context: Any) -> None:
        if not self.name:
            self.name = self.id

    @property
    def domain(self) -> str:
        return entity_domain(self.id)

    @property
    def executable(self) -> bool:
        return is_executable(self.id)


class PersistedEntity(BaseModel):
    """Entry of the persisted entity list; ``name`` holds the entity id."""
    name: str


# Gateway -> Store messages

class AddMessage(BaseModel):
    key: Literal["add"] = "add"
    id: str
    name: str
    state: str


class ChangeMessage(BaseModel):
    key: Literal["change"] = "change"
    id: str
    state: str


class ApiMessage(BaseModel):
    """Health check result: ``value`` is ``"ok"`` or an error description."""
    key: Literal["api"] = "api"
    value: str
    name: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.value == "ok"


class ClearMessage(BaseModel):
    key: Literal["clear"] = "clear"


# Both directions: configuration values and their acknowledgement echo

class SettingMessage(BaseModel):
    key: Literal["url", "port", "token", "force"]
    value: Optional[Union[bool, int, str]] = None

    @field_validator("value")
    @classmethod
    def numbers_as_text(cls, v):
        """Ports may arrive as numbers; keep them as text."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


# Store -> Gateway messages

class EntitiesMessage(BaseModel):
    key: Literal["entities"] = "entities"
    value: List[PersistedEntity] = Field(default_factory=list)


class ChangeRequest(BaseModel):
    """Ask the gateway to run ``action`` against entity ``id``."""
    key: Literal["change"] = "change"
    id: str
    action: str


SETTING_KEYS = ("url", "port", "token", "force")

DEVICE_MESSAGES: Dict[str, Type[BaseModel]] = {
    "add": AddMessage,
    "change": ChangeMessage,
    "api": ApiMessage,
    "clear": ClearMessage,
    **{key: SettingMessage for key in SETTING_KEYS},
}

HOST_MESSAGES: Dict[str, Type[BaseModel]] = {
    "entities": EntitiesMessage,
    "change": ChangeRequest,
    "clear": ClearMessage,
    **{key: SettingMessage for key in SETTING_KEYS},
}


class UnknownMessageError(ValueError):
    """Raised for a message whose key has no model on the receiving side."""


def parse_message(data: Dict[str, Any], models: Dict[str, Type[BaseModel]]) -> BaseModel:
    """
    Validate a raw channel message against the model registered for its key

    Args:
        data: The decoded message, e.g. ``{"key": "change", "id": "light.a", "state": "on"}``
        models: Key to model table for the receiving side

    Returns:
        The validated message model

    Raises:
        UnknownMessageError: if the key is missing or not handled
        pydantic.ValidationError: if the payload does not match the model
    """
    key = data.get("key") if isinstance(data, dict) else None
    model = models.get(key) if isinstance(key, str) else None
    if model is None:
        raise UnknownMessageError(f"Unhandled message key: {key!r}")
    return model.model_validate(data)


class Settings(BaseModel):
    """Settings persisted by the companion device between runs."""
    url: str = DEFAULT_URL
    port: str = DEFAULT_PORT
    token: str = DEFAULT_TOKEN
    force: bool = DEFAULT_FORCE_UPDATE
    entities: List[PersistedEntity] = Field(default_factory=list)
