import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from .wallet import DEFAULT_NETWORK_ID, WalletConfig

log = logging.getLogger(__name__)

REQUIRED_VARS = [
    "OPENAI_API_KEY",
    "WALLET_API_KEY_NAME",
    "WALLET_API_KEY_PRIVATE_KEY",
]
TRANSPORT_TOKENS = {
    "telegram": "TELEGRAM_TOKEN",
    "discord": "DISCORD_TOKEN",
}


@dataclass
class Settings:
    openai_api_key: str
    wallet_api_key_name: str
    wallet_api_key_private_key: str
    transport: str = "telegram"
    transport_token: str = ""
    model: str = "gpt-4o-mini"
    network_id: str = DEFAULT_NETWORK_ID
    rpc_url: Optional[str] = None
    faucet_url: Optional[str] = None
    storage_dir: str = ".data/wallets"
    wallet_store: str = "files"
    max_sessions: Optional[int] = None
    persona_path: Optional[str] = None
    log_level: str = "INFO"

    def wallet_config(self) -> WalletConfig:
        return WalletConfig(
            api_key_name=self.wallet_api_key_name,
            api_key_private_key=self.wallet_api_key_private_key,
            network_id=self.network_id,
            rpc_url=self.rpc_url,
            faucet_url=self.faucet_url,
        )


def _optional_int(name: str, raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    if raw.strip().isdigit() and int(raw) > 0:
        return int(raw)
    log.warning("%s=%r is not a positive integer. Leaving it unset.", name, raw)
    return None


def load_settings() -> Settings:
    """Read settings from the environment, exiting if required values are missing."""
    transport = (os.getenv("TRANSPORT") or "telegram").strip().lower()
    if transport not in TRANSPORT_TOKENS:
        raise SystemExit(f"Unsupported TRANSPORT: {transport}")
    required = REQUIRED_VARS + [TRANSPORT_TOKENS[transport]]
    missing: List[str] = [name for name in required if not os.getenv(name)]
    if missing:
        lines = "\n".join(f"-{name}=your_{name.lower()}_here" for name in missing)
        raise SystemExit(f"Missing required environment variables:\n{lines}")

    network_id = os.getenv("NETWORK_ID")
    if not network_id:
        log.warning("NETWORK_ID is not set. Using %s as default.", DEFAULT_NETWORK_ID)
        network_id = DEFAULT_NETWORK_ID

    return Settings(
        openai_api_key=os.environ["OPENAI_API_KEY"],
        wallet_api_key_name=os.environ["WALLET_API_KEY_NAME"],
        wallet_api_key_private_key=os.environ["WALLET_API_KEY_PRIVATE_KEY"].replace("\\n", "\n"),
        transport=transport,
        transport_token=os.environ[TRANSPORT_TOKENS[transport]],
        model=os.getenv("MODEL", "gpt-4o-mini"),
        network_id=network_id,
        rpc_url=os.getenv("RPC_URL") or None,
        faucet_url=os.getenv("FAUCET_URL") or None,
        storage_dir=os.getenv("STORAGE_DIR", ".data/wallets"),
        wallet_store=(os.getenv("WALLET_STORE") or "files").strip().lower(),
        max_sessions=_optional_int("MAX_SESSIONS", os.getenv("MAX_SESSIONS")),
        persona_path=os.getenv("PERSONA_PATH") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
