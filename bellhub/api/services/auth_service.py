"""JWT authentication service"""

import hmac
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt

from bellhub.engine.models import QueryAuthor
from bellhub.shared.repositories.settings import AccountRepository

logger = logging.getLogger(__name__)

ROOT_NAME = "root"


@dataclass
class Identity:
    """Authenticated principal carried by a token."""

    type: str  # 'root' | 'account'
    name: str
    account_id: int | None = None

    @property
    def author(self) -> QueryAuthor:
        if self.type == ROOT_NAME:
            return QueryAuthor(type="root", name=ROOT_NAME, label="Service")
        return QueryAuthor(type="account", name=self.name, label="Account")

    def to_dict(self) -> dict:
        return {"type": self.type, "name": self.name, "account_id": self.account_id}


class AuthService:
    """Handle credential checks and JWT token creation and validation"""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        expire_days: int = 30,
        root_password: str = "",
    ):
        if not secret_key:
            raise ValueError("JWT secret key cannot be empty")

        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_days = expire_days
        self.root_password = root_password

    async def authenticate(
        self, username: str, password: str, accounts: AccountRepository | None
    ) -> Identity | None:
        """Return the identity for valid credentials, None otherwise"""
        if username == ROOT_NAME:
            if not self.root_password or not hmac.compare_digest(password, self.root_password):
                logger.warning("Root login rejected")
                return None
            return Identity(type="root", name=ROOT_NAME)

        if accounts is None:
            return None
        account = await accounts.find_active_by_name(username)
        if account is None or not hmac.compare_digest(password, account.password):
            logger.warning(f"Login rejected for account '{username}'")
            return None
        return Identity(type="account", name=account.name, account_id=account.id)

    def create_access_token(self, identity: Identity) -> str:
        """Create a JWT access token for an identity"""
        now = datetime.now(UTC)
        subject = ROOT_NAME if identity.type == "root" else f"account:{identity.account_id}"

        payload = {
            "sub": subject,
            "type": identity.type,
            "name": identity.name,
            "exp": now + timedelta(days=self.expire_days),
            "iat": now,
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        logger.debug(f"JWT created for {identity.type}: {identity.name}")

        return token

    def verify_token(self, token: str) -> dict | None:
        """Verify a JWT token and return the payload if valid"""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
            if payload.get("sub") is None:
                logger.warning("Token missing sub")
                return None

            return payload

        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            return None

    def identity_from_token(self, token: str | None) -> Identity | None:
        if not token:
            return None
        payload = self.verify_token(token)
        if payload is None:
            return None

        subject = str(payload["sub"])
        if subject == ROOT_NAME:
            return Identity(type="root", name=ROOT_NAME)
        if subject.startswith("account:"):
            try:
                account_id = int(subject.split(":", 1)[1])
            except ValueError:
                logger.warning(f"Malformed token subject: {subject}")
                return None
            name = str(payload.get("name", ""))
            return Identity(type="account", name=name, account_id=account_id)

        logger.warning(f"Unknown token subject: {subject}")
        return None

    async def resolve_identity(
        self, token: str | None, accounts: AccountRepository | None
    ) -> Identity | None:
        """Decode a token and confirm an account subject is still active"""
        identity = self.identity_from_token(token)
        if identity is None or identity.type == ROOT_NAME:
            return identity

        if accounts is None:
            logger.warning(f"Cannot verify account {identity.account_id}: database unavailable")
            return None
        account = await accounts.get_active(identity.account_id)
        if account is None:
            logger.warning(f"Token for missing or deleted account {identity.account_id}")
            return None
        return Identity(type="account", name=account.name, account_id=account.id)
