# src/stellar_gateway/services/crypto.py
"""Validation of Stellar account addresses and secret keys."""

from __future__ import annotations

import re
from typing import Final

from stellar_sdk import Keypair, StrKey

from stellar_gateway.core.errors import InvalidKeyError

ADDRESS_LENGTH: Final[int] = 56
ADDRESS_PATTERN: Final[re.Pattern[str]] = re.compile(r"^G[A-Z2-7]{55}$")
SECRET_PATTERN: Final[re.Pattern[str]] = re.compile(r"^S[A-Z2-7]{55}$")


class CryptoService:
    """Service handling Stellar key material.

    Secret seeds only ever pass through :meth:`parse_secret_key`; nothing
    here logs or returns them.
    """

    @staticmethod
    def is_valid_address(address: object) -> bool:
        """Return True for a well-formed, checksum-valid ``G...`` account id.

        Args:
            address: Candidate account identifier.

        Returns:
            True only when the value is a string matching the StrKey pattern
            whose embedded CRC16 checksum verifies.
        """
        if not isinstance(address, str) or not address:
            return False
        candidate = address.strip()
        if len(candidate) != ADDRESS_LENGTH or not ADDRESS_PATTERN.match(candidate):
            return False
        return StrKey.is_valid_ed25519_public_key(candidate)

    @staticmethod
    def parse_secret_key(secret_key: str) -> Keypair:
        """Decode an ``S...`` seed into a signing keypair.

        Raises:
            InvalidKeyError: If the material is not a valid Ed25519 seed.
        """
        candidate = (secret_key or "").strip()
        if not SECRET_PATTERN.match(candidate):
            raise InvalidKeyError()
        try:
            return Keypair.from_secret(candidate)
        except ValueError as err:
            raise InvalidKeyError() from err

    @staticmethod
    def derive_address(secret_key: str) -> str:
        """Return the public account id controlled by ``secret_key``."""
        return CryptoService.parse_secret_key(secret_key).public_key

    @staticmethod
    def generate_keypair() -> tuple[str, str]:
        """Generate a random Stellar keypair.

        Returns:
            Tuple of (public_key, secret_seed)
        """
        keypair = Keypair.random()
        return keypair.public_key, keypair.secret

    @staticmethod
    def mask(value: str | None) -> str:
        """Return a log-safe preview of a key."""
        if not value:
            return "N/A"
        return f"{value[:4]}..."
