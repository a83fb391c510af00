import asyncio
import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import aiohttp
from eth_account import Account
from web3 import Web3

from .errors import ProvisioningError

log = logging.getLogger(__name__)

DEFAULT_NETWORK_ID = "base-sepolia"

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "value", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function",
    },
]


@dataclass(frozen=True)
class Network:
    network_id: str
    label: str
    chain_id: int
    rpc_url: str
    usdc_address: str
    testnet: bool


NETWORKS: Dict[str, Network] = {
    "base-sepolia": Network(
        network_id="base-sepolia",
        label="Base Sepolia testnet",
        chain_id=84532,
        rpc_url="https://sepolia.base.org",
        usdc_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        testnet=True,
    ),
    "base-mainnet": Network(
        network_id="base-mainnet",
        label="Base mainnet",
        chain_id=8453,
        rpc_url="https://mainnet.base.org",
        usdc_address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        testnet=False,
    ),
}


class FaucetError(RuntimeError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


@dataclass
class WalletConfig:
    api_key_name: str
    api_key_private_key: str
    wallet_data: Optional[str] = None
    network_id: str = DEFAULT_NETWORK_ID
    rpc_url: Optional[str] = None
    faucet_url: Optional[str] = None


class EvmWalletProvider:
    """Single-account EVM wallet bound to one network."""

    def __init__(
        self,
        *,
        network: Network,
        private_key: str,
        api_key_name: str,
        api_key_private_key: str,
        rpc_url: Optional[str] = None,
        faucet_url: Optional[str] = None,
    ) -> None:
        self.network = network
        self._account = Account.from_key(private_key)
        self._private_key = private_key
        self._api_key_name = api_key_name
        self._api_key_private_key = api_key_private_key
        self._faucet_url = faucet_url
        self.client = Web3(Web3.HTTPProvider(rpc_url or network.rpc_url))

    @property
    def address(self) -> str:
        return self._account.address

    def export_wallet(self) -> Dict[str, str]:
        return {
            "address": self.address,
            "private_key": self._private_key,
            "network_id": self.network.network_id,
        }

    async def _run(self, func):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)

    def _token(self, token_address: Optional[str]):
        address = Web3.to_checksum_address(token_address or self.network.usdc_address)
        return self.client.eth.contract(address=address, abi=ERC20_ABI)

    async def get_balance(self) -> Decimal:
        def _get_balance() -> Decimal:
            balance_wei = self.client.eth.get_balance(self.address)
            return Decimal(self.client.from_wei(balance_wei, "ether"))

        return await self._run(_get_balance)

    async def get_token_balance(self, token_address: Optional[str] = None) -> Decimal:
        contract = self._token(token_address)

        def _get_balance() -> Decimal:
            raw = contract.functions.balanceOf(self.address).call()
            decimals = contract.functions.decimals().call()
            return Decimal(raw) / (Decimal(10) ** decimals)

        return await self._run(_get_balance)

    async def transfer_token(
        self,
        *,
        to_address: str,
        amount: Decimal,
        token_address: Optional[str] = None,
    ) -> str:
        contract = self._token(token_address)
        recipient = Web3.to_checksum_address(to_address)
        account = self._account

        def _send() -> str:
            decimals = contract.functions.decimals().call()
            scaled = amount.scaleb(decimals)
            if scaled <= 0 or scaled != scaled.to_integral_value():
                raise ValueError(
                    f"amount {amount} cannot be expressed with the token's {decimals} decimals"
                )
            value = int(scaled)
            tx = contract.functions.transfer(recipient, value).build_transaction(
                {
                    "from": account.address,
                    "nonce": self.client.eth.get_transaction_count(account.address),
                    "chainId": self.network.chain_id,
                }
            )
            signed = account.sign_transaction(tx)
            raw = getattr(signed, "raw_transaction", None) or signed.rawTransaction
            tx_hash = self.client.eth.send_raw_transaction(raw)
            self.client.eth.wait_for_transaction_receipt(tx_hash, timeout=120)
            return Web3.to_hex(tx_hash)

        tx_hash = await self._run(_send)
        log.info(
            "Wallet %s sent %s tokens to %s on %s (tx=%s)",
            self.address,
            amount,
            recipient,
            self.network.network_id,
            tx_hash,
        )
        return tx_hash

    async def request_faucet_funds(self, asset_id: str = "eth") -> str:
        if not self.network.testnet:
            raise FaucetError("faucet is only available on testnets")
        if not self._faucet_url:
            raise FaucetError("no faucet configured for this deployment")
        payload = {
            "address": self.address,
            "network_id": self.network.network_id,
            "asset_id": asset_id,
        }
        headers = {
            "X-Api-Key-Name": self._api_key_name,
            "X-Api-Key": self._api_key_private_key,
        }
        timeout = aiohttp.ClientTimeout(total=30)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self._faucet_url, json=payload, headers=headers) as resp:
                if resp.status >= 400:
                    body = await resp.text()
                    raise FaucetError(
                        f"faucet returned {resp.status}: {body[:200]}", status=resp.status
                    )
                data = await resp.json(content_type=None)
        return str(data.get("transaction_hash") or data.get("tx_hash") or "")


def _parse_wallet_data(raw: str, network: Network) -> Dict[str, Any]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProvisioningError("stored wallet data is not valid JSON") from exc
    if not isinstance(data, dict) or not data.get("private_key"):
        raise ProvisioningError("stored wallet data has no private key")
    stored_network = data.get("network_id") or network.network_id
    if stored_network != network.network_id:
        raise ProvisioningError(
            f"stored wallet belongs to {stored_network}, not {network.network_id}"
        )
    return data


def provision_wallet(config: WalletConfig) -> EvmWalletProvider:
    """Build a wallet provider from credentials and optional prior state."""
    if not config.api_key_name or not config.api_key_private_key:
        raise ProvisioningError("wallet API key name and private key are required")
    network = NETWORKS.get(config.network_id)
    if network is None:
        raise ProvisioningError(f"unsupported network: {config.network_id}")
    if config.wallet_data:
        private_key = _parse_wallet_data(config.wallet_data, network)["private_key"]
    else:
        private_key = Web3.to_hex(Account.create().key)
    try:
        return EvmWalletProvider(
            network=network,
            private_key=private_key,
            api_key_name=config.api_key_name,
            api_key_private_key=config.api_key_private_key,
            rpc_url=config.rpc_url,
            faucet_url=config.faucet_url,
        )
    except Exception as exc:
        raise ProvisioningError(f"wallet key rejected: {exc}") from exc
