import logging
from typing import List

from .errors import DeliveryError, ReasoningError
from .messages import InboundMessage, canonical_identity
from .sessions import AgentSession, SessionFactory

log = logging.getLogger(__name__)

APOLOGY = "An error occurred while processing your request. Please try again later."


class MessageDispatcher:
    """Routes one inbound message to its sender's session and replies in place."""

    def __init__(self, transport, factory: SessionFactory, reasoner) -> None:
        self.transport = transport
        self.factory = factory
        self.reasoner = reasoner

    @property
    def registry(self):
        return self.factory.context.registry

    async def resolve_session(self, identity: str) -> AgentSession:
        key = canonical_identity(identity)
        session = self.registry.get(key)
        if session is not None:
            log.info("Agent for user %s already exists", key)
            return session
        return await self.factory.create(key)

    async def run_reasoner(self, session: AgentSession, text: str) -> str:
        chunks: List[str] = []
        async for chunk in self.reasoner.respond(session, text):
            chunks.append(chunk)
        response = "".join(chunks).strip()
        if not response:
            raise ReasoningError("reasoner produced an empty response")
        return response

    async def _send(self, conversation_id: str, text: str) -> None:
        conversation = await self.transport.get_conversation(conversation_id)
        if conversation is None:
            raise DeliveryError(f"Conversation not found for ID: {conversation_id}")
        try:
            await conversation.send(text)
        except DeliveryError:
            raise
        except Exception as exc:
            raise DeliveryError(f"send to {conversation_id} failed: {exc}") from exc

    async def handle(self, message: InboundMessage) -> None:
        if message.is_self_echo:
            return
        if not isinstance(message.content, str) or not message.content.strip():
            return
        sender = message.sender_identity
        log.info("Received message from %s in %s", sender, message.conversation_id)
        try:
            session = await self.resolve_session(sender)
            response = await self.run_reasoner(session, message.content)
            await self._send(message.conversation_id, response)
            log.info("Sent response to %s: %s", sender, response)
        except DeliveryError as exc:
            if exc.partial:
                log.error("Reply to %s was cut short: %s", sender, exc)
            else:
                await self._apologize(message.conversation_id, sender, exc)
        except Exception as exc:
            await self._apologize(message.conversation_id, sender, exc)

    async def _apologize(self, conversation_id: str, sender: str, exc: Exception) -> None:
        log.exception("Error handling message from %s: %s", sender, exc)
        try:
            await self._send(conversation_id, APOLOGY)
        except Exception as send_exc:
            log.error("Error sending error response to %s: %s", sender, send_exc)
