"""Bidirectional message channel between the host gateway and the device store."""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from pydantic import BaseModel

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Dict[str, Any]], Awaitable[None]]
LifecycleHandler = Callable[[], Awaitable[None]]


def encode_message(message: Union[BaseModel, Dict[str, Any]]) -> str:
    """Serialize a message model (or plain dict) to the JSON sent over the wire"""
    if isinstance(message, BaseModel):
        return message.model_dump_json(exclude_none=True)
    return json.dumps(message)


class MessageChannel(ABC):
    """
    One endpoint of an opaque, bidirectional message channel

    The hosting platform supplies the transport; this class only fixes the
    lifecycle: ``on_open`` and ``on_close`` fire when the link comes up or goes
    down, and ``on_message`` receives each decoded message as a dict.
    Delivery and ordering are whatever the transport gives.
    """

    def __init__(self, name: str):
        self.name = name
        self.on_open: Optional[LifecycleHandler] = None
        self.on_close: Optional[LifecycleHandler] = None
        self.on_message: Optional[MessageHandler] = None

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...

    @abstractmethod
    async def send(self, message: Union[BaseModel, Dict[str, Any]]) -> None:
        ...


class LocalChannel(MessageChannel):
    """In-process channel endpoint; create connected endpoints with ``pair()``."""

    def __init__(self, name: str):
        super().__init__(name)
        self._peer: Optional["LocalChannel"] = None
        self._queue: "asyncio.Queue[str]" = asyncio.Queue()
        self._reader: Optional[asyncio.Task] = None
        self._pending = 0
        self._open = False

    @classmethod
    def pair(cls, first: str = "host", second: str = "device") -> Tuple["LocalChannel", "LocalChannel"]:
        """Return two endpoints wired to each other"""
        a, b = cls(first), cls(second)
        a._peer, b._peer = b, a
        return a, b

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        """Bring up both endpoints and fire their ``on_open`` handlers"""
        ends = [end for end in (self, self._peer) if end is not None and not end._open]
        for end in ends:
            end._open = True
            end._reader = asyncio.create_task(end._read_loop())
            logger.info(f"Channel {end.name} open")
        for end in ends:
            if end.on_open is not None:
                await end.on_open()

    async def close(self) -> None:
        """Tear down both endpoints and fire their ``on_close`` handlers"""
        ends = [end for end in (self, self._peer) if end is not None and end._open]
        for end in ends:
            end._open = False
            if end._reader is not None:
                end._reader.cancel()
                await asyncio.gather(end._reader, return_exceptions=True)
                end._reader = None
            # Undelivered messages are lost with the link
            while not end._queue.empty():
                end._queue.get_nowait()
                end._queue.task_done()
                end._pending -= 1
            logger.info(f"Channel {end.name} closed")
        for end in ends:
            if end.on_close is not None:
                await end.on_close()

    async def send(self, message: Union[BaseModel, Dict[str, Any]]) -> None:
        if not self._open or self._peer is None or not self._peer._open:
            logger.warning(f"Channel {self.name} not open, dropping message")
            return
        payload = encode_message(message)
        logger.debug(f"{self.name} -> {self._peer.name}: {payload}")
        self._peer._pending += 1
        self._peer._queue.put_nowait(payload)

    async def flush(self) -> None:
        """Wait until neither endpoint has undelivered or in-progress messages"""
        ends = [end for end in (self, self._peer) if end is not None]
        while any(end._pending for end in ends):
            for end in ends:
                await end._queue.join()

    async def _read_loop(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                if self.on_message is not None:
                    await self.on_message(json.loads(payload))
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Channel {self.name} failed to handle message: {payload}")
            finally:
                self._pending -= 1
                self._queue.task_done()
