import asyncio
import logging
from typing import Optional

import discord

from core.errors import DeliveryError
from core.messages import InboundMessage
from core.stream import MessageStream

log = logging.getLogger(__name__)

DISCORD_MESSAGE_LIMIT = 2000


class DiscordConversation:
    def __init__(self, channel, channel_id: str) -> None:
        self.channel = channel
        self.id = channel_id

    async def send(self, text: str) -> None:
        for start in range(0, len(text), DISCORD_MESSAGE_LIMIT):
            try:
                await self.channel.send(text[start : start + DISCORD_MESSAGE_LIMIT])
            except Exception as exc:
                if not start:
                    raise
                raise DeliveryError(
                    f"send to {self.id} failed after {start} characters: {exc}", partial=True
                ) from exc


class DiscordTransport(discord.Client):
    def __init__(self, token: str):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(intents=intents)
        self._token = token
        self._runner: Optional[asyncio.Task] = None
        self.stream = MessageStream()

    @property
    def identity(self) -> str:
        return f"discord:{self.user.id}" if self.user else ""

    async def on_ready(self):
        log.info("Discord transport ready as %s (%s)", self.user, self.identity)

    async def on_message(self, message: discord.Message):
        # own messages arrive here too; the dispatcher drops them
        self.stream.publish(
            InboundMessage(
                sender=f"discord:{message.author.id}",
                conversation_id=str(message.channel.id),
                content=message.content,
                bot_identity=self.identity,
            )
        )

    def subscribe(self) -> MessageStream:
        return self.stream

    async def get_conversation(self, conversation_id: str) -> Optional[DiscordConversation]:
        try:
            channel_id = int(conversation_id)
        except ValueError:
            return None
        channel = self.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.fetch_channel(channel_id)
            except discord.DiscordException as exc:
                log.warning("Discord channel %s not found: %s", conversation_id, exc)
                return None
        return DiscordConversation(channel, conversation_id)

    async def open(self):
        await self.login(self._token)
        self._runner = asyncio.create_task(self.connect())
        await self.wait_until_ready()

    async def shutdown(self):
        self.stream.close()
        await self.close()
        if self._runner:
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
