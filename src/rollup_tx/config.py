"""Application configuration using pydantic-settings.

Operator credentials, chain endpoint and rollup contract location are all
read from the environment (or a local .env file).
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Chain
    # ======================
    rpc_url: str = Field(
        default="https://bsc-dataseed.binance.org", description="JSON-RPC endpoint of the L1 chain"
    )
    chain_id: int = Field(default=56, description="Chain ID used for replay protection")
    rpc_timeout: float = Field(default=30.0, description="Timeout for JSON-RPC calls (seconds)")

    # ======================
    # Rollup contract
    # ======================
    rollup_address: str = Field(default="", description="Address of the rollup contract")
    rollup_abi_path: str = Field(
        default="", description="Path to the rollup contract ABI (JSON artifact)"
    )

    # ======================
    # Transactions
    # ======================
    default_gas_limit: int = Field(default=5_000_000, description="Gas limit when none is given")
    tx_type: str = Field(default="legacy", description="Envelope format: legacy or access_list")

    # ======================
    # Signing
    # ======================
    signer_backend: str = Field(default="", description="local or kms (auto-detected if empty)")
    operator_private_key: Optional[str] = Field(
        default=None, description="Hex private key for local signing"
    )
    kms_key_id: Optional[str] = Field(default=None, description="AWS KMS key ID, ARN or alias")
    kms_address: Optional[str] = Field(
        default=None, description="Address of the KMS key (fetched from KMS if empty)"
    )
    aws_region: str = Field(default="us-east-1", description="AWS region of the KMS key")
    kms_timeout: float = Field(default=10.0, description="Timeout for KMS calls (seconds)")

    @property
    def has_local_key(self) -> bool:
        """Check if a local operator key is configured."""
        return bool(self.operator_private_key)

    @property
    def has_kms_key(self) -> bool:
        """Check if a KMS key is configured."""
        return bool(self.kms_key_id)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "rpc_url": self.rpc_url,
            "chain_id": self.chain_id,
            "rollup_address": self.rollup_address or "(not set)",
            "rollup_abi_path": self.rollup_abi_path or "(not set)",
            "tx_type": self.tx_type,
            "signer": {
                "backend": self.signer_backend or "(auto)",
                "private_key": "***" if self.operator_private_key else "(not set)",
                "kms_key_id": self.kms_key_id or "(not set)",
                "kms_address": self.kms_address or "(not set)",
                "aws_region": self.aws_region,
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
