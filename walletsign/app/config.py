"""
Centralized configuration for the WalletSign core.

Pydantic v2 settings management: values are read from the environment
(prefix ``WALLETSIGN_``) or a local ``.env`` file, validated once and
frozen for the lifetime of the process.

Configuration never influences verification outcomes beyond selecting
the ledger network, the record store location and the hashing salt.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

from pydantic import AnyHttpUrl, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

HexChainId = Annotated[
    str,
    Field(
        pattern=r"^0x[0-9a-fA-F]+$",
        description="EIP-155 chain identifier in 0x-prefixed hex form",
    ),
]

EthAddress = Annotated[
    str,
    Field(
        pattern=r"^0x[0-9a-fA-F]{40}$",
        description="20-byte account address in 0x-prefixed hex form",
    ),
]


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class WalletSignSettings(BaseSettings):
    """
    Settings parsed from the environment.

    Defaults target Polygon Mainnet, the network the signing protocol
    was deployed against.
    """

    # ---------------------------------------------------------------------
    # Record Store
    # ---------------------------------------------------------------------

    database_path: Annotated[
        Path,
        Field(
            default=Path("data/walletsign.db"),
            description="SQLite file holding verification records",
        ),
    ]

    # ---------------------------------------------------------------------
    # Ledger network
    # ---------------------------------------------------------------------

    rpc_url: Annotated[
        AnyHttpUrl,
        Field(
            default="https://polygon-rpc.com",
            description="JSON-RPC endpoint used for read-only ledger queries",
        ),
    ]

    wallet_rpc_url: Annotated[
        Optional[AnyHttpUrl],
        Field(
            default=None,
            description=(
                "JSON-RPC endpoint of the signing wallet. Signing flows are "
                "unavailable when unset; verification does not need it."
            ),
        ),
    ]

    chain_id: HexChainId = "0x89"

    network_name: Annotated[
        str,
        Field(
            default="Polygon Mainnet",
            min_length=1,
            description="Human-readable network label printed on signature pages",
        ),
    ]

    native_currency_name: str = "MATIC"
    native_currency_symbol: str = "MATIC"
    native_currency_decimals: Annotated[int, Field(default=18, ge=0, le=36)]

    explorer_url: Annotated[
        AnyHttpUrl,
        Field(
            default="https://polygonscan.com/",
            description="Block explorer base URL used for transaction links",
        ),
    ]

    # ---------------------------------------------------------------------
    # Hashing
    # ---------------------------------------------------------------------

    hash_salt: Annotated[
        Optional[SecretStr],
        Field(
            default=None,
            description=(
                "Optional hex-encoded salt shared across process restarts. "
                "When unset, a fresh random salt is drawn per process."
            ),
        ),
    ]

    # ---------------------------------------------------------------------
    # Ledger client behaviour
    # ---------------------------------------------------------------------

    rpc_timeout_seconds: Annotated[float, Field(default=30.0, gt=0)]

    rpc_retry_seconds: Annotated[
        float,
        Field(
            default=20.0,
            ge=0,
            description="Upper bound on time spent retrying transport errors",
        ),
    ]

    receipt_poll_interval_seconds: Annotated[float, Field(default=2.0, gt=0)]
    receipt_timeout_seconds: Annotated[float, Field(default=300.0, gt=0)]

    # ---------------------------------------------------------------------
    # On-chain signing
    # ---------------------------------------------------------------------

    transaction_gas_limit: Annotated[int, Field(default=100_000, ge=21_000)]

    transaction_recipient: EthAddress = (
        "0x0000000000000000000000000000000000000000"
    )

    # ---------------------------------------------------------------------
    # Signature page
    # ---------------------------------------------------------------------

    branding_line: Annotated[
        str,
        Field(
            default="Signed via WalletSign (walletsign.io)",
            description="Sub-heading drawn under the protocol banner",
        ),
    ]

    @field_validator("hash_salt")
    @classmethod
    def salt_must_be_hex(cls, v: Optional[SecretStr]) -> Optional[SecretStr]:
        if v is None:
            return v
        raw = v.get_secret_value().strip()
        try:
            decoded = bytes.fromhex(raw)
        except ValueError as exc:
            raise ValueError("WALLETSIGN_HASH_SALT must be hex encoded") from exc
        if len(decoded) < 16:
            raise ValueError(
                "WALLETSIGN_HASH_SALT must decode to at least 16 bytes"
            )
        return v

    model_config = SettingsConfigDict(
        env_prefix="WALLETSIGN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )


# -------------------------------------------------------------------------
# Settings Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> WalletSignSettings:
    """Process-wide settings singleton."""
    return WalletSignSettings()
