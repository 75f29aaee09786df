"""Process-wide server configuration.

ServerConfig is built once at startup (from CLI flags) and shared by every
request handler through app.state. It is frozen: nothing mutates it after
construction, so handlers read it without synchronization.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_LISTEN = "localhost:8000"
DEFAULT_PATH = "/tmp/restic"
DEFAULT_IDLE_TIMEOUT = 5

HTPASSWD_FILENAME = ".htpasswd"
DEFAULT_TLS_KEY_FILENAME = "private_key"
DEFAULT_TLS_CERT_FILENAME = "public_key"


class ConfigError(Exception):
    """Raised when the startup configuration is inconsistent."""

    pass


@dataclass(frozen=True)
class TLSSettings:
    """Resolved TLS settings.

    Attributes:
        enabled: Whether the server terminates TLS itself.
        key: Path to the private key file (None when disabled).
        cert: Path to the certificate file (None when disabled).
    """

    enabled: bool
    key: str | None = None
    cert: str | None = None


class ServerConfig(BaseModel):
    """Immutable server configuration.

    Attributes:
        listen: Listen address as "host:port" (host may be empty).
        log: Path of the combined-format HTTP request log, if any.
        path: Storage root served by the filesystem backend.
        tls: Serve HTTPS instead of HTTP.
        tls_cert: Explicit certificate path (requires tls).
        tls_key: Explicit private key path (requires tls).
        append_only: Forbid deletes except of lock files.
        metrics_enabled: Record blob read/write/delete counters.
        debug: Log handler operations and error causes at DEBUG. create_app
            lowers the "restserver" logger; the CLI also sets up the handler.
        idle_timeout: Seconds an idle keep-alive connection is held open.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    listen: str = DEFAULT_LISTEN
    log: str | None = None
    path: str = DEFAULT_PATH
    tls: bool = False
    tls_cert: str | None = None
    tls_key: str | None = None
    append_only: bool = False
    metrics_enabled: bool = False
    debug: bool = False
    idle_timeout: int = Field(default=DEFAULT_IDLE_TIMEOUT, ge=1)

    @property
    def htpasswd_path(self) -> str:
        """Return the credential file location under the storage root."""
        return os.path.join(self.path, HTPASSWD_FILENAME)

    def tls_settings(self) -> TLSSettings:
        """Resolve TLS key and certificate paths.

        When TLS is on and no explicit paths are given, the key and
        certificate default to "private_key" and "public_key" under the
        storage root.

        Raises:
            ConfigError: If key or certificate paths are set while TLS is off.
        """
        if not self.tls:
            if self.tls_key or self.tls_cert:
                raise ConfigError("requires enabled TLS")
            return TLSSettings(enabled=False)

        key = self.tls_key or os.path.join(self.path, DEFAULT_TLS_KEY_FILENAME)
        cert = self.tls_cert or os.path.join(self.path, DEFAULT_TLS_CERT_FILENAME)
        return TLSSettings(enabled=True, key=key, cert=cert)

    def listen_host_port(self) -> tuple[str, int]:
        """Split the listen address into host and port.

        An empty host ("":8000) means all interfaces.

        Raises:
            ConfigError: If the address has no valid port.
        """
        host, sep, port = self.listen.rpartition(":")
        if not sep:
            raise ConfigError(f"invalid listen address: {self.listen!r}")
        try:
            port_num = int(port)
        except ValueError as e:
            raise ConfigError(f"invalid listen port: {port!r}") from e
        if not 0 <= port_num <= 65535:
            raise ConfigError(f"invalid listen port: {port!r}")
        return host.strip("[]") or "0.0.0.0", port_num
