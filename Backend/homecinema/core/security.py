# homecinema/core/security.py
import hashlib
import hmac
import logging
import threading

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from passlib.context import CryptContext

logger = logging.getLogger(__name__)

REALM = "Home Cinema"

# --- 1. Password hashing ---
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        return False


def hash_secrets(secrets: dict[str, str]) -> dict[str, str]:
    """
    Hash every plaintext value of a secret table.
    Values that passlib already recognises as a hash are kept as they are.
    """
    hashed = {}
    for name, secret in secrets.items():
        if pwd_context.identify(secret, required=False):
            hashed[name] = secret
        else:
            hashed[name] = get_password_hash(secret)
    return hashed


def _digest(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


# --- 2. Static credential table ---
class CredentialTable:
    """
    Username -> password hash table built from the USERS setting.

    Browsers re-send Basic credentials with every range request, so a
    successful argon2 verification is remembered as a SHA-256 digest of the
    password and later requests compare against that instead.
    """

    def __init__(self, users: dict[str, str]):
        self._hashes = hash_secrets(users)
        self._verified: dict[str, str] = {}
        self._lock = threading.Lock()

    def __contains__(self, username: str) -> bool:
        return username in self._hashes

    def __len__(self) -> int:
        return len(self._hashes)

    def authenticate(self, username: str, password: str) -> bool:
        hashed = self._hashes.get(username)
        if hashed is None:
            # Spend the same time as a real check so unknown names do not stand out
            pwd_context.dummy_verify()
            return False

        digest = _digest(password)
        with self._lock:
            known = self._verified.get(username)
        if known is not None and hmac.compare_digest(known, digest):
            return True

        if not verify_password(password, hashed):
            return False
        with self._lock:
            self._verified[username] = digest
        return True


# --- 3. HTTP Basic dependency ---
http_basic = HTTPBasic(realm=REALM)


def get_current_user(
        request: Request,
        credentials: HTTPBasicCredentials = Depends(http_basic),
) -> str:
    """
    A FastAPI dependency that:
    1. Reads the Basic credentials from the "Authorization" header.
    2. Checks them against the static credential table.
    3. Returns the username, or raises a 401 challenge.
    """
    table: CredentialTable = request.app.state.credentials
    if not table.authenticate(credentials.username, credentials.password):
        logger.warning("Rejected credentials for user %r", credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied. Please enter valid credentials.",
            headers={"WWW-Authenticate": f'Basic realm="{REALM}"'},
        )
    return credentials.username
