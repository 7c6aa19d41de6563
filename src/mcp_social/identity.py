"""Identity & session resolution.

Turns whatever credential a transport extracted (Basic username:password,
a bearer / session token, or nothing) into a resolved ``Identity``. The
password path and the token path end in the same place, so handlers only
ever see a username.
"""
import base64
import binascii
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from .errors import AuthError, ValidationError
from .models import User
from .security import hash_password, verify_password, is_valid_token, new_token
from .sessions import Anonymous, Credentialed, Identity, SessionStore
from .store import SocialStore


logger = logging.getLogger(__name__)

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
PASSWORD_MIN_LENGTH = 6
BIO_MAX_LENGTH = 500

INVALID_CREDENTIALS = "Invalid username or password"


@lru_cache(maxsize=None)
def dummy_hash(rounds: int) -> str:
    """Throwaway hash at the given cost, shared by every resolver in the process."""
    return hash_password(new_token(), rounds)


def validate_username(username: str) -> str:
    if not username or not (USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH):
        raise ValidationError(
            f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters"
        )
    return username


def validate_password(password: str) -> str:
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    return password


def validate_bio(bio: Optional[str]) -> Optional[str]:
    if bio is not None and len(bio) > BIO_MAX_LENGTH:
        raise ValidationError(f"Bio must be {BIO_MAX_LENGTH} characters or less")
    return bio


def validate_token(token: Optional[str]) -> str:
    if not is_valid_token(token):
        raise ValidationError(
            "Session token must be a UUID (xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx)"
        )
    return token


@dataclass(frozen=True)
class Credential:
    """Raw caller credential as presented to a transport."""
    scheme: str  # "basic", "token" or "none"
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None

    @classmethod
    def basic(cls, username: str, password: str) -> "Credential":
        return cls("basic", username=username, password=password)

    @classmethod
    def bearer(cls, token: str) -> "Credential":
        return cls("token", token=token)

    @classmethod
    def none(cls) -> "Credential":
        return cls("none")


def parse_credential(
    authorization: Optional[str] = None,
    session_token: Optional[str] = None
) -> Credential:
    """Build a Credential from an Authorization header or X-Session-Token."""
    if authorization:
        scheme, _, value = authorization.strip().partition(" ")
        value = value.strip()
        if scheme.lower() == "basic" and value:
            try:
                decoded = base64.b64decode(value, validate=True).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError):
                return Credential.none()
            username, sep, password = decoded.partition(":")
            if not sep or not username or not password:
                return Credential.none()
            return Credential.basic(username, password)
        if scheme.lower() == "bearer" and value:
            return Credential.bearer(value)
    if session_token:
        return Credential.bearer(session_token.strip())
    return Credential.none()


class IdentityResolver:
    """Single authorization check for both identity models."""

    def __init__(
        self,
        store: SocialStore,
        sessions: SessionStore[Identity],
        bcrypt_rounds: int = 10,
        identity_mode: str = "any"
    ):
        self.store = store
        self.sessions = sessions
        self.bcrypt_rounds = bcrypt_rounds
        self.identity_mode = identity_mode

    def resolve(self, credential: Credential) -> Identity:
        if credential.scheme == "basic" and self.identity_mode in ("any", "basic"):
            user = self._verify(credential.username, credential.password)
            return Credentialed(user.username)

        if credential.scheme == "token" and self.identity_mode in ("any", "token"):
            validate_token(credential.token)
            identity = self.sessions.get(credential.token)
            if identity is None:
                raise AuthError("Session token is not bound to a profile. Log in or create a profile first.")
            return identity

        raise AuthError(self._missing_credential_message())

    def _missing_credential_message(self) -> str:
        if self.identity_mode == "basic":
            return (
                "Missing or invalid Authorization header. Use Basic authentication "
                "with username:password. Create an account first with create_account tool."
            )
        if self.identity_mode == "token":
            return (
                "Missing session token. Send it as 'Authorization: Bearer <token>' or "
                "'X-Session-Token'. Get one from login or create_profile."
            )
        return (
            "Authentication required. Use Basic authentication with username:password "
            "or a session token from login/create_profile."
        )

    def _verify(self, username: str, password: str) -> User:
        user = self.store.get_user(username) if username else None
        if not user or not user.password_hash:
            # Burn a comparable amount of work so unknown users are not cheaper
            verify_password(password or "", dummy_hash(self.bcrypt_rounds))
            raise AuthError(INVALID_CREDENTIALS)
        if not verify_password(password or "", user.password_hash):
            raise AuthError(INVALID_CREDENTIALS)
        return user

    def _mint(self, identity: Identity) -> str:
        token = new_token()
        while self.sessions.get(token) is not None:
            token = new_token()
        self.sessions.set(token, identity)
        return token

    def signup(self, username: str, password: str, bio: str = None) -> tuple[User, str]:
        """Create a password account and return it with a fresh token."""
        validate_username(username)
        validate_password(password)
        validate_bio(bio)

        password_hash = hash_password(password, self.bcrypt_rounds)
        user = self.store.create_user(username, bio, password_hash)
        logger.info(f"Account created: @{user.username}")
        return user, self._mint(Credentialed(user.username))

    def login(self, username: str, password: str) -> tuple[User, str]:
        if not username or not password:
            raise ValidationError("Username and password are required")
        user = self._verify(username, password)
        return user, self._mint(Credentialed(user.username))

    def create_profile(self, token: Optional[str], username: str, bio: str = None) -> User:
        """Legacy anonymous profile: bind the caller's own token to a new account."""
        if not token:
            raise ValidationError(
                "create_profile needs a session token. Send a UUID as 'X-Session-Token' "
                "or 'Authorization: Bearer <uuid>'."
            )
        validate_token(token)
        validate_username(username)
        validate_bio(bio)

        user = self.store.create_user(username, bio)
        self.sessions.set(token, Anonymous(user.username))
        logger.info(f"Anonymous profile created: @{user.username}")
        return user
