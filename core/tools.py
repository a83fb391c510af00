import inspect
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, List, Optional

log = logging.getLogger(__name__)

ToolHandler = Callable[..., Awaitable[str]]


@dataclass
class Tool:
    name: str
    description: str
    handler: ToolHandler
    parameters: Dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    async def invoke(self, arguments: Optional[str]) -> str:
        try:
            kwargs = json.loads(arguments) if arguments else {}
        except json.JSONDecodeError:
            return f"Error: arguments for {self.name} are not valid JSON."
        if not isinstance(kwargs, dict):
            return f"Error: arguments for {self.name} must be an object."
        try:
            bound = inspect.signature(self.handler).bind(**kwargs)
        except TypeError as exc:
            return f"Error: invalid arguments for {self.name}: {exc}"
        try:
            return await self.handler(*bound.args, **bound.kwargs)
        except Exception as exc:
            log.warning("tool %s failed: %s", self.name, exc)
            return _describe_failure(exc)


def _status_of(exc: Exception) -> Optional[int]:
    status = getattr(exc, "status", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def _describe_failure(exc: Exception) -> str:
    status = _status_of(exc)
    if status is not None:
        return f"Error (HTTP {status}): {exc}"
    return f"Error: {exc}"


def _parse_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"invalid amount: {value!r}") from exc
    if amount <= 0:
        raise ValueError("amount must be positive")
    return amount


def build_wallet_tools(wallet) -> List[Tool]:
    """Expose a wallet provider's actions as reasoner tools."""
    network = wallet.network

    async def get_wallet_details() -> str:
        return json.dumps(
            {
                "address": wallet.address,
                "network_id": network.network_id,
                "network": network.label,
                "chain_id": network.chain_id,
                "usdc_address": network.usdc_address,
            }
        )

    async def get_balance() -> str:
        balance = await wallet.get_balance()
        return f"{balance} ETH on {network.label} for {wallet.address}"

    async def get_token_balance(token_address: Optional[str] = None) -> str:
        balance = await wallet.get_token_balance(token_address)
        symbol = "USDC" if not token_address else token_address
        return f"{balance} {symbol} on {network.label}"

    async def transfer(to: str, amount: Any, token_address: Optional[str] = None) -> str:
        value = _parse_amount(amount)
        tx_hash = await wallet.transfer_token(
            to_address=to, amount=value, token_address=token_address
        )
        symbol = "USDC" if not token_address else token_address
        return f"Transferred {value} {symbol} to {to} on {network.label}. Transaction hash: {tx_hash}"

    async def request_faucet_funds(asset_id: str = "eth") -> str:
        tx_hash = await wallet.request_faucet_funds(asset_id)
        return f"Received {asset_id} from the faucet. Transaction hash: {tx_hash or 'pending'}"

    return [
        Tool(
            name="get_wallet_details",
            description="Get the wallet address, network and supported token address.",
            handler=get_wallet_details,
        ),
        Tool(
            name="get_balance",
            description="Get the native ETH balance of the wallet.",
            handler=get_balance,
        ),
        Tool(
            name="get_token_balance",
            description="Get the ERC-20 token balance of the wallet. Defaults to USDC.",
            handler=get_token_balance,
            parameters={
                "type": "object",
                "properties": {
                    "token_address": {
                        "type": "string",
                        "description": "ERC-20 contract address; omit for USDC.",
                    }
                },
            },
        ),
        Tool(
            name="transfer",
            description="Transfer an amount of an ERC-20 token (USDC by default) to an address.",
            handler=transfer,
            parameters={
                "type": "object",
                "properties": {
                    "to": {"type": "string", "description": "Recipient address."},
                    "amount": {
                        "type": "string",
                        "description": "Amount in whole token units, e.g. '1.5'.",
                    },
                    "token_address": {
                        "type": "string",
                        "description": "ERC-20 contract address; omit for USDC.",
                    },
                },
                "required": ["to", "amount"],
            },
        ),
        Tool(
            name="request_faucet_funds",
            description="Request test funds from the faucet. Only available on testnets.",
            handler=request_faucet_funds,
            parameters={
                "type": "object",
                "properties": {
                    "asset_id": {
                        "type": "string",
                        "description": "Asset to request: 'eth' or 'usdc'.",
                    }
                },
            },
        ),
    ]
