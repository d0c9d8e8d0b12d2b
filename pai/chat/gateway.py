"""Channel-neutral message types and the chat gateway.

Concrete channels (Telegram, WhatsApp) implement the Channel protocol and
feed InboundMessage objects to the handler given to start(). The gateway
keeps the registry and runs one task per inbound message.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass
class InboundMessage:
    """A message received from any channel."""

    channel: str
    user_id: str
    text: str = ""
    reply_to_text: str = ""  # text of the message being replied to
    image_url: str = ""
    has_image: bool = False
    caption: str = ""
    username: str = ""
    first_name: str = ""
    last_name: str = ""
    language: str = ""


@dataclass
class OutboundMessage:
    """A message to send via any channel."""

    channel: str
    user_id: str
    text: str
    parse_mode: str = ""  # "Markdown", "HTML", or ""


MessageHandler = Callable[[InboundMessage], None]


class Channel(Protocol):
    async def send_message(self, user_id: str, msg: OutboundMessage) -> None: ...

    async def send_typing(self, user_id: str) -> None: ...

    async def start(self, handler: MessageHandler) -> None: ...

    async def stop(self) -> None: ...


class MessageProcessor(Protocol):
    def process_message(self, msg: InboundMessage) -> Awaitable[str]: ...


class Gateway:
    """Routes outbound messages to registered channels."""

    def __init__(self) -> None:
        self._channels: dict[str, Channel] = {}
        self._tasks: set[asyncio.Task] = set()

    def register(self, name: str, channel: Channel) -> None:
        self._channels[name] = channel
        logger.info("Chat channel registered: %s", name)

    def has_channel(self, name: str) -> bool:
        return name in self._channels

    def _get(self, name: str) -> Channel:
        try:
            return self._channels[name]
        except KeyError:
            raise KeyError(f"unknown channel: {name}") from None

    async def send(self, msg: OutboundMessage) -> None:
        await self._get(msg.channel).send_message(msg.user_id, msg)

    async def send_typing(self, channel: str, user_id: str) -> None:
        await self._get(channel).send_typing(user_id)

    async def dispatch(self, msg: InboundMessage, engine: MessageProcessor) -> None:
        """Handle one inbound message end to end. Never raises."""
        try:
            await self.send_typing(msg.channel, msg.user_id)
        except Exception as e:
            logger.warning("Failed to send typing indicator to %s:%s: %s", msg.channel, msg.user_id, e)

        try:
            response = await engine.process_message(msg)
        except Exception:
            logger.exception("process_message failed for %s:%s", msg.channel, msg.user_id)
            return

        try:
            await self.send(OutboundMessage(channel=msg.channel, user_id=msg.user_id, text=response))
        except Exception as e:
            logger.warning("Failed to send reply to %s:%s: %s", msg.channel, msg.user_id, e)

    async def start_all(self, engine: MessageProcessor) -> None:
        """Start every channel. Each inbound message gets its own task."""

        def handler(msg: InboundMessage) -> None:
            task = asyncio.create_task(self.dispatch(msg, engine), name=f"chat-{msg.channel}-{msg.user_id}")
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        for name, channel in self._channels.items():
            logger.info("Starting channel %s", name)
            await channel.start(handler)

    async def stop_all(self) -> None:
        """Stop channels, then wait for in-flight messages."""
        for name, channel in self._channels.items():
            try:
                await channel.stop()
            except Exception as e:
                logger.warning("Failed to stop channel %s: %s", name, e)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
