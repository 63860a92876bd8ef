import os
from typing import Optional

# Documented defaults; a setter given None always falls back to these
DEFAULT_URL = "127.0.0.1"
DEFAULT_PORT = "8123"
DEFAULT_TOKEN = ""
DEFAULT_FORCE_UPDATE = True

# Home Assistant configuration from the environment (used by the command line)
HA_URL: str = os.environ.get("HA_URL", DEFAULT_URL)
HA_PORT: str = os.environ.get("HA_PORT", DEFAULT_PORT)
HA_TOKEN: str = os.environ.get("HA_TOKEN", DEFAULT_TOKEN)
HA_FORCE_UPDATE: bool = os.environ.get("HA_FORCE_UPDATE", "true").lower() not in ("0", "false", "no")


def get_ha_headers(token: str) -> dict:
    """Return the headers needed for Home Assistant API requests"""
    headers = {
        "Content-Type": "application/json",
    }

    # Only add Authorization header if token is provided
    if token:
        headers["Authorization"] = f"Bearer {token}"

    return headers


class GatewayConfig:
    """Connection settings for a single Home Assistant server.

    Every setter replaces its field outright: passing ``None`` restores the
    default rather than keeping the previous value.
    """

    def __init__(self):
        self.server_url: str = DEFAULT_URL
        self.server_port: str = DEFAULT_PORT
        self.access_token: str = DEFAULT_TOKEN
        self.force_update: bool = DEFAULT_FORCE_UPDATE

    def configure(
        self,
        url: Optional[str] = None,
        port: Optional[str] = None,
        token: Optional[str] = None,
        force: Optional[bool] = None,
    ) -> None:
        """Replace the whole configuration"""
        self.change_url(url)
        self.change_port(port)
        self.change_token(token)
        self.change_force(force)

    def change_url(self, url: Optional[str]) -> None:
        self.server_url = url if url is not None else DEFAULT_URL

    def change_port(self, port: Optional[str]) -> None:
        self.server_port = str(port) if port is not None else DEFAULT_PORT

    def change_token(self, token: Optional[str]) -> None:
        self.access_token = token if token is not None else DEFAULT_TOKEN

    def change_force(self, force: Optional[bool]) -> None:
        self.force_update = bool(force) if force is not None else DEFAULT_FORCE_UPDATE

    def is_configured(self) -> bool:
        """True when url, port and token are all non-empty"""
        return bool(self.server_url) and bool(self.server_port) and bool(self.access_token)

    def address(self) -> str:
        """Base address of the server, e.g. ``http://homeassistant.local:8123``"""
        return f"{self.server_url}:{self.server_port}"

    def headers(self) -> dict:
        return get_ha_headers(self.access_token)

    def __repr__(self) -> str:
        # Never log the token itself
        return (
            f"GatewayConfig(url={self.server_url!r}, port={self.server_port!r}, "
            f"token={'set' if self.access_token else 'unset'}, force={self.force_update})"
        )
