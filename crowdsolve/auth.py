"""
Credential service: password hashing, bearer tokens, registration and login.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from crowdsolve.config import Settings
from crowdsolve.db import RecordStore, UserRecord
from crowdsolve.errors import (
    Conflict,
    InvalidCredentials,
    InvalidToken,
    Unauthenticated,
    require_fields,
)

logger = logging.getLogger(__name__)

BCRYPT_MAX_BYTES = 72


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, as carried in a verified token."""

    user_id: str
    username: str


@dataclass(frozen=True)
class AuthResult:
    token: str
    user: UserRecord


def _bcrypt_safe(password: str) -> bytes:
    # bcrypt only looks at the first 72 bytes and newer releases refuse more.
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


class CredentialService:
    """Issues and checks credentials against the user records."""

    def __init__(self, settings: Settings, records: RecordStore):
        self.records = records
        self.secret_key = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.token_ttl_seconds = settings.token_ttl_hours * 3600
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=settings.bcrypt_rounds,
        )

    def hash_password(self, password: str) -> str:
        """Hash a password"""
        return str(self.pwd_context.hash(_bcrypt_safe(password)))

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash"""
        try:
            return bool(self.pwd_context.verify(_bcrypt_safe(plain_password), hashed_password))
        except ValueError:
            # Stored value is not a recognizable hash.
            return False

    def issue_token(self, user: UserRecord, *, issued_at: Optional[float] = None) -> str:
        """Create a signed token embedding ``userId`` and ``username``."""
        iat = int(issued_at if issued_at is not None else time.time())
        claims: Dict[str, Any] = {
            "userId": user.id,
            "username": user.username,
            "iat": iat,
            "exp": iat + self.token_ttl_seconds,
        }
        return str(jwt.encode(claims, self.secret_key, algorithm=self.algorithm))

    def verify(self, token: Optional[str]) -> Identity:
        """
        Check a bearer token's signature and expiry.

        Raises:
            Unauthenticated: If no token was presented.
            InvalidToken: If the token is malformed, forged, expired or lacks
                the identity claims.
        """
        if not token:
            raise Unauthenticated()
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as exc:
            logger.info("Token verification failed: %s", exc)
            raise InvalidToken() from exc
        user_id = payload.get("userId")
        username = payload.get("username")
        if not user_id or not username:
            logger.info("Token verification failed: identity claims missing")
            raise InvalidToken()
        return Identity(user_id=str(user_id), username=str(username))

    def register(
        self, username: Optional[str], email: Optional[str], password: Optional[str]
    ) -> AuthResult:
        require_fields(username=username, email=email, password=password)
        if self.records.find_user_by_email_or_username(email, username):
            logger.info("Registration rejected for existing user %s", username)
            raise Conflict()
        user = self.records.create_user(
            username=username,
            email=email,
            password_hash=self.hash_password(password),
        )
        logger.info("Registered user %s (%s)", user.username, user.id)
        return AuthResult(token=self.issue_token(user), user=user)

    def login(self, email: Optional[str], password: Optional[str]) -> AuthResult:
        require_fields(email=email, password=password)
        user = self.records.find_user_by_email(email)
        if not user or not self.verify_password(password, user.password_hash):
            logger.info("Failed login attempt")
            raise InvalidCredentials()
        logger.info("User %s logged in", user.id)
        return AuthResult(token=self.issue_token(user), user=user)
