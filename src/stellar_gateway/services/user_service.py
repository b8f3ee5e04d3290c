"""CRUD-style helpers for wallet-identified users."""
from __future__ import annotations

import logging
import re
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stellar_gateway.core.errors import InvalidInputError, UserNotFoundError
from stellar_gateway.core.settings import settings
from stellar_gateway.models import Balance, User
from stellar_gateway.schemas.auth import ProfileUpdate
from stellar_gateway.services.crypto import CryptoService

__all__ = [
    "require_address",
    "get_user_by_wallet",
    "require_user",
    "get_or_create_user",
    "update_profile",
]

logger = logging.getLogger(__name__)

NAME_MAX_LENGTH = 100
BIO_MAX_LENGTH = 500
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def require_address(wallet_address: str | None) -> str:
    """Return the stripped address or raise the matching input error."""
    if not wallet_address:
        raise InvalidInputError("MISSING_WALLET_ADDRESS", "Wallet address is required")
    if not CryptoService.is_valid_address(wallet_address):
        raise InvalidInputError("INVALID_STELLAR_ADDRESS", "Invalid Stellar address")
    return wallet_address.strip()


def get_user_by_wallet(db: Session, wallet_address: str) -> User | None:
    """Return a single user by wallet address."""
    return db.scalar(select(User).where(User.wallet_address == wallet_address))


def require_user(db: Session, wallet_address: str) -> User:
    user = get_user_by_wallet(db, wallet_address)
    if user is None:
        raise UserNotFoundError(wallet_address)
    return user


def get_or_create_user(
    db: Session,
    wallet_address: str,
    *,
    initial_balance: Decimal | None = None,
) -> tuple[User, bool]:
    """Return the user for ``wallet_address``, creating it on first sight.

    New users receive a seed off-chain balance in the default asset.

    Returns:
        Tuple of (user, created)
    """
    user = get_user_by_wallet(db, wallet_address)
    if user is not None:
        return user, False

    seed = settings.initial_credit_balance if initial_balance is None else initial_balance
    user = User(wallet_address=wallet_address)
    user.balances.append(Balance(asset=settings.default_asset, amount=seed))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Registered concurrently by another request.
        db.rollback()
        return require_user(db, wallet_address), False
    db.refresh(user)
    logger.info("Created user %s with %s %s", wallet_address, seed, settings.default_asset)
    return user, True


def _validate_profile(update_data: ProfileUpdate) -> None:
    if update_data.name and len(update_data.name) > NAME_MAX_LENGTH:
        raise InvalidInputError("INVALID_NAME", "Name must be at most 100 characters")
    if update_data.email and not EMAIL_PATTERN.match(update_data.email):
        raise InvalidInputError("INVALID_EMAIL", "Invalid email")
    if update_data.bio and len(update_data.bio) > BIO_MAX_LENGTH:
        raise InvalidInputError("INVALID_BIO", "Bio must be at most 500 characters")


def update_profile(db: Session, db_user: User, update_data: ProfileUpdate) -> User:
    """Apply non-empty profile fields to an existing user."""
    _validate_profile(update_data)
    update_dict = update_data.model_dump(exclude_unset=True)
    for key, value in update_dict.items():
        if value:
            setattr(db_user, key, value)

    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user
