from decimal import Decimal
from typing import Dict, List, Optional

import pytest

from core.dispatcher import MessageDispatcher
from core.messages import InboundMessage
from core.sessions import RuntimeContext, SessionFactory, SessionRegistry
from core.wallet import NETWORKS, WalletConfig
from core.wallet_store import FileWalletStore

BOT_IDENTITY = "0xb07"


class FakeWallet:
    def __init__(self, config: WalletConfig, generation: int):
        self.network = NETWORKS[config.network_id]
        self.prior_state = config.wallet_data
        self.generation = generation
        self.address = f"0x{generation:040x}"
        self.transfers: List[dict] = []
        self.transfer_error: Optional[Exception] = None

    def export_wallet(self) -> Dict[str, object]:
        return {
            "address": self.address,
            "generation": self.generation,
            "restored": self.prior_state is not None,
        }

    async def get_balance(self) -> Decimal:
        return Decimal("0.25")

    async def get_token_balance(self, token_address: Optional[str] = None) -> Decimal:
        return Decimal("12.5")

    async def transfer_token(self, *, to_address, amount, token_address=None) -> str:
        if self.transfer_error:
            raise self.transfer_error
        self.transfers.append({"to": to_address, "amount": amount})
        return "0xfeed"

    async def request_faucet_funds(self, asset_id: str = "eth") -> str:
        return "0xfaucet"


class FakeProvisioner:
    def __init__(self):
        self.configs: List[WalletConfig] = []
        self.error: Optional[Exception] = None

    @property
    def calls(self) -> int:
        return len(self.configs)

    def __call__(self, config: WalletConfig) -> FakeWallet:
        self.configs.append(config)
        if self.error:
            raise self.error
        return FakeWallet(config, generation=len(self.configs))


class FakeConversation:
    def __init__(self, conversation_id: str):
        self.id = conversation_id
        self.sent: List[str] = []
        self.failures = 0

    async def send(self, text: str) -> None:
        if self.failures:
            self.failures -= 1
            raise RuntimeError("network unreachable")
        self.sent.append(text)


class FakeTransport:
    def __init__(self, identity: str = BOT_IDENTITY):
        self.identity = identity
        self.conversations: Dict[str, FakeConversation] = {}

    def conversation(self, conversation_id: str) -> FakeConversation:
        return self.conversations.setdefault(conversation_id, FakeConversation(conversation_id))

    async def get_conversation(self, conversation_id: str) -> Optional[FakeConversation]:
        return self.conversations.get(conversation_id)


class FakeReasoner:
    """Echoes a canned answer, calling wallet tools when the text asks for them."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.fail_on: set = set()

    async def respond(self, session, text: str):
        self.calls.append((session, text))
        if text in self.fail_on:
            raise RuntimeError(f"reasoner exploded on {text!r}")
        tools = {tool.name: tool for tool in session.tools}
        if "balance" in text:
            yield "Checking your wallet.\n"
            result = await tools["get_token_balance"].invoke(None)
            yield f"Your balance is {result}\n"
        elif text.startswith("send"):
            _, amount, _, _, to = text.split()
            result = await tools["transfer"].invoke(f'{{"to": "{to}", "amount": "{amount}"}}')
            if result.startswith("Error"):
                yield f"The transfer failed ({result}). Check the address and try again.\n"
            else:
                yield f"{result}\n"
        else:
            yield f"  You said: {text}  \n"
        session.memory.append("user", text)


@pytest.fixture
def provisioner():
    return FakeProvisioner()


@pytest.fixture
def wallet_store(tmp_path):
    return FileWalletStore(tmp_path / "wallets")


@pytest.fixture
def context(wallet_store):
    return RuntimeContext(registry=SessionRegistry(), wallet_store=wallet_store)


@pytest.fixture
def factory(context, provisioner):
    return SessionFactory(
        context,
        wallet_config=WalletConfig(api_key_name="key-name", api_key_private_key="key-secret"),
        instruction="You are a payment agent.",
        provision=provisioner,
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def reasoner():
    return FakeReasoner()


@pytest.fixture
def dispatcher(transport, factory, reasoner):
    return MessageDispatcher(transport, factory, reasoner)


def make_message(sender: str, content, conversation_id: str = "convo-1") -> InboundMessage:
    return InboundMessage(
        sender=sender,
        conversation_id=conversation_id,
        content=content,
        bot_identity=BOT_IDENTITY,
    )
