"""HTTP Basic credential checks for the admin API and the Payme webhook."""

import base64
import binascii
import logging
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from planpay.config import settings

logger = logging.getLogger(__name__)

# Strict basic auth: FastAPI answers 401 itself when the header is missing
_basic_scheme = HTTPBasic()


def _matches(given: str, expected: str) -> bool:
    if not expected:
        return False
    return secrets.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


async def require_admin(credentials: HTTPBasicCredentials = Depends(_basic_scheme)) -> str:
    """Guard for every admin route. Returns the admin login.

    Raises:
        HTTPException 401: If the login or password is wrong.
    """
    login_ok = _matches(credentials.username, settings.admin_login)
    password_ok = _matches(credentials.password, settings.admin_password)
    if not (login_ok and password_ok):
        logger.warning("Rejected admin credentials for login %r", credentials.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username


def parse_basic_header(authorization: str | None) -> tuple[str, str] | None:
    """Split an ``Authorization: Basic ...`` header into (login, password)."""
    if not authorization:
        return None
    scheme, _, encoded = authorization.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    login, sep, password = decoded.partition(":")
    if not sep:
        return None
    return login, password


def is_payme_authorized(authorization: str | None) -> bool:
    """Payme sends ``Paycom:<key>``; the production and test keys are both accepted."""
    parsed = parse_basic_header(authorization)
    if parsed is None:
        return False
    login, password = parsed
    if not _matches(login, settings.payme_login):
        return False
    return _matches(password, settings.payme_password) or _matches(password, settings.payme_password_test)
