#!/usr/bin/env python
"""Entry point for running hass-companion as a module"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import httpx

from hass_companion.channel import LocalChannel
from hass_companion.config import HA_FORCE_UPDATE, HA_PORT, HA_TOKEN, HA_URL
from hass_companion.hass import EntityGateway
from hass_companion.host import HostHandler
from hass_companion.models import PersistedEntity, Settings
from hass_companion.store import EntityStore, load_settings, save_settings

logger = logging.getLogger("hass_companion")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hass-companion",
        description="Sync Home Assistant entities to a companion entity list.",
    )
    parser.add_argument("entity_ids", nargs="*", help="Entities to show (default: the saved list)")
    parser.add_argument("--settings", type=Path, default=Path("settings.json"), help="Settings file")
    parser.add_argument("--url", default=None, help=f"Server URL (default: saved, else {HA_URL})")
    parser.add_argument("--port", default=None, help=f"Server port (default: saved, else {HA_PORT})")
    parser.add_argument("--token", default=None, help="Long-lived access token (default: saved, else $HA_TOKEN)")
    parser.add_argument("--no-force", dest="force", action="store_false", default=None,
                        help="Only show states read back from the server after a change")
    parser.add_argument("--toggle", metavar="ENTITY_ID", action="append", default=[],
                        help="Flip an entity after syncing (may repeat)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def initial_settings(args: argparse.Namespace) -> Settings:
    """Saved settings, overridden by whatever was given on the command line"""
    if args.settings.exists():
        settings = load_settings(args.settings)
    else:
        settings = Settings(url=HA_URL, port=HA_PORT, token=HA_TOKEN, force=HA_FORCE_UPDATE)

    if args.url is not None:
        settings.url = args.url
    if args.port is not None:
        settings.port = args.port
    if args.token is not None:
        settings.token = args.token
    if args.force is not None:
        settings.force = args.force
    if args.entity_ids:
        settings.entities = [PersistedEntity(name=entity_id) for entity_id in args.entity_ids]
    return settings


async def run(argv: Optional[List[str]] = None, client: Optional[httpx.AsyncClient] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler()
        ]
    )

    settings = initial_settings(args)
    saved_entities = list(settings.entities)
    host_end, device_end = LocalChannel.pair()
    gateway = EntityGateway(emit=host_end.send, client=client)
    HostHandler(gateway, host_end)
    store = EntityStore(device_end.send, settings)
    store.attach(device_end)

    try:
        await device_end.open()
        await device_end.flush()

        for entity_id in args.toggle:
            index = next((i for i, entity in enumerate(store.entities) if entity.id == entity_id), None)
            if index is None:
                logger.warning(f"{entity_id} is not in the entity list")
                continue
            await store.request_toggle(index)
        await device_end.flush()
    finally:
        await device_end.close()
        await gateway.close()

    print(store.address_text)
    print(store.renderer.format())

    if not store.available:
        # An unreachable server must not erase the saved entity list
        store.settings.entities = saved_entities
    save_settings(store.settings, args.settings)
    return 0 if store.available else 1


def main():
    """Sync the entity list once and print it"""
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
