import logging
from typing import Optional, Set

from telegram import Update
from telegram.constants import MessageLimit
from telegram.error import TelegramError
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from core.errors import DeliveryError
from core.messages import InboundMessage
from core.stream import MessageStream

log = logging.getLogger(__name__)


class TelegramConversation:
    def __init__(self, bot, chat_id: str) -> None:
        self.bot = bot
        self.id = chat_id

    async def send(self, text: str) -> None:
        limit = MessageLimit.MAX_TEXT_LENGTH
        for start in range(0, len(text), limit):
            try:
                await self.bot.send_message(chat_id=int(self.id), text=text[start : start + limit])
            except Exception as exc:
                if not start:
                    raise
                raise DeliveryError(
                    f"send to {self.id} failed after {start} characters: {exc}", partial=True
                ) from exc


class TelegramTransport:
    def __init__(self, token: str):
        self.application = Application.builder().token(token).build()
        self.application.add_handler(
            MessageHandler(filters.TEXT & (~filters.COMMAND), self.handle_update)
        )
        self.stream = MessageStream()
        self.identity = ""
        self._known_chats: Set[str] = set()

    async def handle_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        user = update.effective_user
        chat = update.effective_chat
        if not message or not user or not chat:
            return
        chat_id = str(chat.id)
        self._known_chats.add(chat_id)
        self.stream.publish(
            InboundMessage(
                sender=f"telegram:{user.id}",
                conversation_id=chat_id,
                content=message.text,
                bot_identity=self.identity,
            )
        )

    def subscribe(self) -> MessageStream:
        return self.stream

    async def get_conversation(self, conversation_id: str) -> Optional[TelegramConversation]:
        bot = self.application.bot
        if conversation_id not in self._known_chats:
            try:
                await bot.get_chat(int(conversation_id))
            except (TelegramError, ValueError) as exc:
                log.warning("Telegram chat %s not found: %s", conversation_id, exc)
                return None
            self._known_chats.add(conversation_id)
        return TelegramConversation(bot, conversation_id)

    async def open(self):
        await self.application.initialize()
        self.identity = f"telegram:{self.application.bot.id}"
        await self.application.start()
        await self.application.updater.start_polling()
        log.info("Telegram transport ready as %s", self.identity)

    async def shutdown(self):
        self.stream.close()
        await self.application.updater.stop()
        await self.application.stop()
        await self.application.shutdown()
