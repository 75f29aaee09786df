"""restserver authentication: htpasswd credentials and HTTP basic auth.

The access gate only needs a CredentialValidator; HtpasswdFile is the
file-backed implementation read from ".htpasswd" under the storage root.
When that file is absent authentication is disabled entirely.

Supported htpasswd hash schemes:
- {SHA}: base64-encoded SHA-1 digest (htpasswd -s)

Entries using other schemes are skipped with a warning, so those users
can never authenticate. Fails closed on missing or invalid credentials.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Protocol, runtime_checkable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from restserver.api.error_model import make_error_response

logger = logging.getLogger(__name__)

BASIC_PREFIX = "Basic "
SHA_PREFIX = "{SHA}"
AUTH_REALM = "restic"


@runtime_checkable
class CredentialValidator(Protocol):
    """Checks a username/password pair."""

    def validate(self, username: str, password: str) -> bool:
        """Return True if the credentials are valid."""
        ...


class HtpasswdFile:
    """In-memory view of an Apache htpasswd file."""

    def __init__(self, entries: dict[str, str]) -> None:
        """Create from a mapping of username to stored hash."""
        self._entries = dict(entries)

    @classmethod
    def parse(cls, text: str, source: str = "<string>") -> HtpasswdFile:
        """Parse htpasswd content.

        Blank lines and lines starting with "#" are ignored. Malformed
        lines and unsupported hash schemes are skipped with a warning.
        """
        entries: dict[str, str] = {}
        for lineno, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue

            username, sep, stored = line.partition(":")
            if not sep or not username:
                logger.warning("%s:%d: malformed htpasswd line skipped", source, lineno)
                continue

            if not stored.startswith(SHA_PREFIX):
                logger.warning(
                    "%s:%d: unsupported password hash for user %s, only {SHA} is accepted",
                    source,
                    lineno,
                    username,
                )
                continue

            entries[username] = stored

        return cls(entries)

    @classmethod
    def from_path(cls, path: str | Path) -> HtpasswdFile:
        """Load an htpasswd file.

        Raises:
            FileNotFoundError: If the file does not exist.
            OSError: If the file cannot be read.
        """
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        return cls.parse(text, source=str(path))

    @property
    def users(self) -> frozenset[str]:
        return frozenset(self._entries)

    def validate(self, username: str, password: str) -> bool:
        stored = self._entries.get(username)
        if stored is None:
            return False

        digest = hashlib.sha1(password.encode("utf-8")).digest()  # noqa: S324
        expected = SHA_PREFIX + base64.b64encode(digest).decode("ascii")
        return hmac.compare_digest(stored.encode("utf-8"), expected.encode("utf-8"))


def load_htpasswd(path: str | Path) -> HtpasswdFile | None:
    """Load the credential file, or return None when it does not exist."""
    try:
        htpasswd = HtpasswdFile.from_path(path)
    except FileNotFoundError:
        logger.info("Authentication disabled")
        return None

    logger.info("Authentication enabled")
    return htpasswd


def parse_basic_auth(header: str | None) -> tuple[str, str] | None:
    """Extract (username, password) from an Authorization header value.

    Returns:
        The credential pair, or None if the header is absent or not a
        well-formed Basic credential.
    """
    if not header or not header.startswith(BASIC_PREFIX):
        return None

    try:
        decoded = base64.b64decode(header[len(BASIC_PREFIX) :].strip(), validate=True)
        text = decoded.decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, sep, password = text.partition(":")
    if not sep:
        return None
    return username, password


def get_user(request: Request) -> str:
    """Return the basic-auth username of a request, or "" if none."""
    username: str | None = getattr(request.state, "username", None)
    if username is not None:
        return username

    credentials = parse_basic_auth(request.headers.get("Authorization"))
    if credentials is None:
        return ""
    return credentials[0]


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Middleware that challenges every request with HTTP basic auth.

    Behavior:
    - Missing, malformed or rejected credentials => 401 with a Basic
      challenge; the wrapped application is never invoked.
    - Valid credentials => request.state.username is set and the request
      proceeds.
    """

    def __init__(self, app: ASGIApp, validator: CredentialValidator) -> None:
        super().__init__(app)
        self._validator = validator

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Authenticate the request before passing it on."""
        credentials = parse_basic_auth(request.headers.get("Authorization"))

        if credentials is None or not self._validator.validate(*credentials):
            logger.debug(
                "Authentication failed for %s %s",
                request.method,
                request.url.path,
                extra={"request_id": getattr(request.state, "request_id", None)},
            )
            return make_error_response(
                request,
                http_status=401,
                headers={"WWW-Authenticate": f'Basic realm="{AUTH_REALM}"'},
            )

        request.state.username = credentials[0]
        return await call_next(request)
