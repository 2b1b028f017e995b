import json
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from pydantic_settings import BaseSettings
from solana.rpc.async_api import AsyncClient
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .pda import CANDY_MACHINE_PROGRAM_ID, PROGRAM_ID
from .transactions import TransactionSubmitter


class Settings(BaseSettings):
    rpc_url: str = "https://api.devnet.solana.com"
    program_id: str = str(PROGRAM_ID)
    candy_machine_program_id: str = str(CANDY_MACHINE_PROGRAM_ID)
    commitment: str = "confirmed"
    confirm_timeout_seconds: float = 60.0
    payer_keypair_path: Optional[str] = None

    class Config:
        env_prefix = "CANDY_GUARD_"
        env_file = ".env"
        env_file_encoding = "utf-8"


def load_pubkey(value: str, name: str) -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(f"{name} is not a valid public key: {value!r}") from exc


def load_keypair(path: Union[str, Path]) -> Keypair:
    """Reads a keypair file: a JSON byte array, or an object with a ``secretKey`` array."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Missing keypair at {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, list):
        secret_bytes = bytes(data)
    elif isinstance(data, dict) and "secretKey" in data:
        secret_bytes = bytes(data["secretKey"])
    else:
        raise RuntimeError(f"Unsupported keypair format in {path}")
    try:
        return Keypair.from_bytes(secret_bytes)
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(f"Failed to parse keypair {path}: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def program_ids(settings: Optional[Settings] = None):
    """Configured candy guard and candy machine program ids."""
    settings = settings or get_settings()
    return (
        load_pubkey(settings.program_id, "program_id"),
        load_pubkey(settings.candy_machine_program_id, "candy_machine_program_id"),
    )


def payer_keypair(settings: Optional[Settings] = None) -> Keypair:
    settings = settings or get_settings()
    if not settings.payer_keypair_path:
        raise RuntimeError("CANDY_GUARD_PAYER_KEYPAIR_PATH not configured")
    return load_keypair(settings.payer_keypair_path)


def create_submitter(settings: Optional[Settings] = None, client=None) -> TransactionSubmitter:
    """Submitter for the configured payer, over ``client`` or a new ``AsyncClient``."""
    settings = settings or get_settings()
    if client is None:
        client = AsyncClient(settings.rpc_url, commitment=settings.commitment)
    return TransactionSubmitter(
        client,
        payer_keypair(settings),
        commitment=settings.commitment,
        timeout=settings.confirm_timeout_seconds,
    )
