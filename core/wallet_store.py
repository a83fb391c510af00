import os
import sqlite3
import time
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote

from .errors import PersistenceWarning
from .messages import canonical_identity


@dataclass(frozen=True)
class WalletRecord:
    identity: str
    payload: str


class WalletStore(Protocol):
    def load(self, identity: str) -> Optional[WalletRecord]:
        ...

    def save(self, identity: str, payload: str) -> None:
        ...


class FileWalletStore:
    """One JSON blob per identity, replaced whole on every save."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _record_path(self, identity: str) -> Path:
        return self.root / f"{quote(canonical_identity(identity), safe='')}.json"

    def load(self, identity: str) -> Optional[WalletRecord]:
        key = canonical_identity(identity)
        path = self._record_path(key)
        try:
            if not path.exists():
                return None
            payload = path.read_text(encoding="utf-8")
        except Exception as exc:
            warnings.warn(f"could not read wallet data for {key}: {exc}", PersistenceWarning)
            return None
        return WalletRecord(identity=key, payload=payload)

    def save(self, identity: str, payload: str) -> None:
        key = canonical_identity(identity)
        path = self._record_path(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, path)


class SqliteWalletStore:
    def __init__(self, db_path: str) -> None:
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self) -> None:
        with self.conn:
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS wallets (
                  identity TEXT PRIMARY KEY,
                  payload TEXT NOT NULL,
                  updated_at REAL NOT NULL
                )
                """
            )

    def load(self, identity: str) -> Optional[WalletRecord]:
        key = canonical_identity(identity)
        try:
            row = self.conn.execute(
                "SELECT payload FROM wallets WHERE identity=?", (key,)
            ).fetchone()
        except sqlite3.Error as exc:
            warnings.warn(f"could not read wallet data for {key}: {exc}", PersistenceWarning)
            return None
        if not row:
            return None
        return WalletRecord(identity=key, payload=row["payload"])

    def save(self, identity: str, payload: str) -> None:
        key = canonical_identity(identity)
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO wallets(identity, payload, updated_at)
                VALUES(?,?,?)
                ON CONFLICT(identity)
                DO UPDATE SET payload=excluded.payload, updated_at=excluded.updated_at
                """,
                (key, payload, time.time()),
            )

    def close(self) -> None:
        self.conn.close()


def build_wallet_store(kind: str, storage_dir: str) -> WalletStore:
    root = Path(storage_dir)
    if kind == "sqlite":
        root.mkdir(parents=True, exist_ok=True)
        return SqliteWalletStore(str(root / "wallets.db"))
    return FileWalletStore(root)
