"""
Email/password sign-up and sign-in.
"""

from __future__ import annotations

import logging

import bcrypt

from filedash.db import UserRecord, UserStore
from filedash.errors import InvalidCredentialsError, ValidationError

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes of a password.
MAX_PASSWORD_BYTES = 72


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _check_credentials(email: str, password: str) -> bytes:
    if not email or not password:
        raise ValidationError(
            "credentials_required", "Email and password are required"
        )
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            "password_length",
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes",
        )
    return encoded


class AuthService:
    def __init__(self, users: UserStore, rounds: int = 10):
        self.users = users
        self.rounds = rounds

    def sign_up(self, email: str, password: str) -> UserRecord:
        email = normalize_email(email)
        encoded = _check_credentials(email, password)
        password_hash = bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.rounds))
        record = self.users.create_user(email, password_hash.decode("utf-8"))
        logger.info("Created user %s", record.user_id)
        return record

    def sign_in(self, email: str, password: str) -> UserRecord:
        email = normalize_email(email)
        encoded = _check_credentials(email, password)
        record = self.users.get_user_by_email(email)
        # Same error for an unknown email and a wrong password.
        if record is None or not bcrypt.checkpw(
            encoded, record.password_hash.encode("utf-8")
        ):
            logger.info("Rejected sign-in attempt")
            raise InvalidCredentialsError("Invalid credentials")
        logger.info("User %s signed in", record.user_id)
        return record
