from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


def canonical_identity(value: object) -> str:
    """Single normalisation used for self-checks, registry keys and storage keys."""
    return str(value or "").strip().lower()


@dataclass(frozen=True)
class InboundMessage:
    sender: str
    conversation_id: str
    content: Optional[str]
    bot_identity: str

    @property
    def sender_identity(self) -> str:
        return canonical_identity(self.sender)

    @property
    def is_self_echo(self) -> bool:
        return self.sender_identity == canonical_identity(self.bot_identity)


class Conversation(Protocol):
    id: str

    async def send(self, text: str) -> None:
        ...


class Transport(Protocol):
    identity: str

    def subscribe(self):
        ...

    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        ...

    async def open(self) -> None:
        ...

    async def shutdown(self) -> None:
        ...
