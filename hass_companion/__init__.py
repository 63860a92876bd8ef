"""Home Assistant companion.

This package bridges Home Assistant entities to a companion device: a host-side
gateway talks to the REST API, and a device-side store keeps the entity list
in sync through a simple message channel.
"""

__version__ = "0.1.0"

from hass_companion.hass import EntityGateway
from hass_companion.store import EntityStore
from hass_companion.host import HostHandler

__all__ = ["EntityGateway", "EntityStore", "HostHandler"]
