"""
Credential store.

Owns every read and write of the ``users`` table: account creation, lookup,
password verification, and the Spotify token fields. Methods are blocking
SQLAlchemy calls; async callers run them with ``run_in_threadpool``.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..db import UserRecord
from ..errors import DuplicateEmail, NotFound, ValidationError

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes of a password.
MAX_PASSWORD_BYTES = 72


class CredentialStore:
    """
    Data-access layer for user accounts and their linked Spotify tokens.

    Args:
        session_factory: SQLAlchemy sessionmaker bound to the database
        bcrypt_rounds: Cost factor used when hashing new passwords
    """

    def __init__(self, session_factory: sessionmaker, bcrypt_rounds: int = 12):
        self._session_factory = session_factory
        self._bcrypt_rounds = bcrypt_rounds
        self._dummy_hash: Optional[bytes] = None

    # =========================================================================
    # Accounts
    # =========================================================================

    def create_account(self, email: str, password: str, first_name: str, last_name: str) -> UserRecord:
        """
        Register a new user.

        The raw password is hashed before anything touches the database.

        Raises:
            DuplicateEmail: If an account with this email already exists
            ValidationError: If the password exceeds bcrypt's input limit
        """
        password_bytes = password.encode("utf-8")
        if len(password_bytes) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")

        if self.find_by_email(email) is not None:
            raise DuplicateEmail(email)

        user = UserRecord(
            email=email,
            password_hash=self._hash(password_bytes),
            first_name=first_name,
            last_name=last_name,
        )
        with self._session_factory() as session:
            session.add(user)
            try:
                session.commit()
            except IntegrityError:
                # Lost a race with a concurrent registration for the same email.
                session.rollback()
                raise DuplicateEmail(email)

        logger.info("Created account", extra={"user_id": user.id})
        return user

    def find_by_email(self, email: str) -> Optional[UserRecord]:
        with self._session_factory() as session:
            return session.scalars(
                select(UserRecord).where(UserRecord.email == email)
            ).first()

    def find_by_id(self, user_id: str) -> UserRecord:
        """
        Raises:
            NotFound: If no user has this id
        """
        with self._session_factory() as session:
            user = session.get(UserRecord, user_id)
        if user is None:
            raise NotFound()
        return user

    def verify_credential(self, user: Optional[UserRecord], candidate: str) -> bool:
        """
        Check ``candidate`` against the user's stored hash.

        ``user`` may be None (unknown email); a dummy hash is checked instead
        so both login failures take the same time.
        """
        candidate_bytes = candidate.encode("utf-8")
        if user is None:
            bcrypt.checkpw(candidate_bytes[:MAX_PASSWORD_BYTES], self._get_dummy_hash())
            return False
        if len(candidate_bytes) > MAX_PASSWORD_BYTES:
            return False
        return bcrypt.checkpw(candidate_bytes, user.password_hash.encode("utf-8"))

    # =========================================================================
    # Spotify tokens
    # =========================================================================

    def set_third_party_tokens(
        self,
        user_id: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_in: int,
        now: Optional[datetime] = None,
    ) -> UserRecord:
        """
        Store a Spotify token set on the user in a single commit.

        Args:
            user_id: Owner of the tokens
            access_token: New access token
            refresh_token: New refresh token, or None to keep the stored one
                (Spotify omits it when it does not rotate the refresh token)
            expires_in: Access token lifetime in seconds as reported by Spotify
            now: Issuance time, defaults to the current UTC time

        Raises:
            NotFound: If no user has this id
        """
        issued_at = now or datetime.now(timezone.utc)

        with self._session_factory() as session:
            user = session.get(UserRecord, user_id)
            if user is None:
                raise NotFound()

            user.spotify_access_token = access_token
            if refresh_token:
                user.spotify_refresh_token = refresh_token
            user.spotify_access_token_expires = issued_at + timedelta(seconds=int(expires_in))
            session.commit()

        logger.info(
            "Stored Spotify tokens",
            extra={"user_id": user_id, "expires_in": expires_in},
        )
        return user

    def clear_third_party_tokens(self, user_id: str) -> UserRecord:
        """Unlink Spotify: all three token fields are cleared together."""
        with self._session_factory() as session:
            user = session.get(UserRecord, user_id)
            if user is None:
                raise NotFound()

            user.spotify_access_token = None
            user.spotify_refresh_token = None
            user.spotify_access_token_expires = None
            session.commit()

        logger.info("Cleared Spotify tokens", extra={"user_id": user_id})
        return user

    def get_third_party_access_token(self, user_id: str) -> Optional[str]:
        return self.find_by_id(user_id).spotify_access_token

    def get_third_party_refresh_token(self, user_id: str) -> Optional[str]:
        return self.find_by_id(user_id).spotify_refresh_token

    # =========================================================================
    # Helpers
    # =========================================================================

    def _hash(self, password_bytes: bytes) -> str:
        salt = bcrypt.gensalt(rounds=self._bcrypt_rounds)
        return bcrypt.hashpw(password_bytes, salt).decode("utf-8")

    def _get_dummy_hash(self) -> bytes:
        if self._dummy_hash is None:
            self._dummy_hash = self._hash(b"not-a-real-password").encode("utf-8")
        return self._dummy_hash
