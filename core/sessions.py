from __future__ import annotations

import inspect
import json
import logging
import warnings
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any, Callable, List, Optional

from .errors import PersistenceWarning
from .messages import canonical_identity
from .reasoner import ConversationMemory
from .tools import Tool, build_wallet_tools
from .wallet import WalletConfig, provision_wallet
from .wallet_store import WalletRecord, WalletStore

log = logging.getLogger(__name__)


@dataclass
class AgentSession:
    identity: str
    instruction: str
    tools: List[Tool]
    wallet: Any
    memory: ConversationMemory = field(default_factory=ConversationMemory)


class SessionRegistry:
    """Identity -> live session map.

    Unbounded unless ``max_sessions`` is given, in which case the least
    recently used session is dropped. A dropped identity is rebuilt from its
    stored wallet on next contact, losing only its turn history.
    """

    def __init__(self, max_sessions: Optional[int] = None) -> None:
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, AgentSession] = OrderedDict()

    def get(self, identity: str) -> Optional[AgentSession]:
        key = canonical_identity(identity)
        session = self._sessions.get(key)
        if session is not None and self.max_sessions:
            self._sessions.move_to_end(key)
        return session

    def put(self, identity: str, session: AgentSession) -> None:
        key = canonical_identity(identity)
        self._sessions[key] = session
        self._sessions.move_to_end(key)
        if self.max_sessions:
            while len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                log.info("Evicted idle session for %s", evicted)

    def __contains__(self, identity: object) -> bool:
        return canonical_identity(identity) in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


@dataclass
class RuntimeContext:
    """State shared by the dispatcher and the session factory."""

    registry: SessionRegistry
    wallet_store: WalletStore


class SessionFactory:
    def __init__(
        self,
        context: RuntimeContext,
        *,
        wallet_config: WalletConfig,
        instruction: str,
        provision: Callable[[WalletConfig], Any] = provision_wallet,
        toolkit: Callable[[Any], List[Tool]] = build_wallet_tools,
    ) -> None:
        self.context = context
        self.wallet_config = wallet_config
        self.instruction = instruction
        self.provision = provision
        self.toolkit = toolkit

    def _load_record(self, identity: str) -> Optional[WalletRecord]:
        try:
            return self.context.wallet_store.load(identity)
        except Exception as exc:
            warnings.warn(
                f"could not load wallet data for {identity}: {exc}", PersistenceWarning
            )
            return None

    def _save_record(self, identity: str, wallet: Any) -> None:
        try:
            payload = json.dumps(wallet.export_wallet())
            self.context.wallet_store.save(identity, payload)
        except Exception as exc:
            warnings.warn(
                f"failed to save wallet data for {identity}: {exc}", PersistenceWarning
            )
            return
        log.info("Wallet data saved for user %s", identity)

    async def create(self, identity: str) -> AgentSession:
        key = canonical_identity(identity)
        record = self._load_record(key)
        log.info(
            "Creating new agent for user %s, wallet data: %s",
            key,
            "found" if record else "not found",
        )
        config = replace(self.wallet_config, wallet_data=record.payload if record else None)
        wallet = self.provision(config)
        if inspect.isawaitable(wallet):
            wallet = await wallet
        session = AgentSession(
            identity=key,
            instruction=self.instruction,
            tools=self.toolkit(wallet),
            wallet=wallet,
        )
        self._save_record(key, wallet)
        self.context.registry.put(key, session)
        return session
