"""TLS trust configuration.

HTTPS peers are verified against the certifi CA bundle unless the caller
supplies ``ssl_ca_cert`` (a PEM file or an OpenSSL hashed certificate
directory). ``ssl_verify_mode="verify_none"`` is an explicit opt-in that
disables chain and hostname verification and is always logged.
"""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import certifi

from ..errors import ConfigurationError

__all__ = ["TrustConfig", "default_ca_bundle"]

logger = logging.getLogger(__name__)


def default_ca_bundle() -> Path:
    """Path of the bundled root CA file."""
    return Path(certifi.where())


@dataclass(frozen=True)
class TrustConfig:
    ca_cert: Optional[Path] = None
    verify_mode: str = "verify"

    @classmethod
    def from_options(cls, options: Any) -> "TrustConfig":
        return cls(ca_cert=options.ssl_ca_cert, verify_mode=options.ssl_verify_mode)

    @property
    def ca_location(self) -> Path:
        return Path(self.ca_cert) if self.ca_cert is not None else default_ca_bundle()

    @property
    def verifies_peer(self) -> bool:
        return self.verify_mode != "verify_none"

    def build_ssl_context(self) -> ssl.SSLContext:
        """Create the client :class:`ssl.SSLContext` for HTTPS exchanges.

        Raises:
            ConfigurationError: If the CA location is missing or unreadable.
        """

        location = self.ca_location
        try:
            if location.is_dir():
                ctx = ssl.create_default_context(capath=str(location))
            elif location.is_file():
                ctx = ssl.create_default_context(cafile=str(location))
            else:
                raise ConfigurationError(f"CA certificate path does not exist: {location}")
        except ssl.SSLError as exc:
            raise ConfigurationError(f"Unable to load CA certificates from {location}: {exc}") from exc

        if not self.verifies_peer:
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
            logger.warning("TLS verification DISABLED by ssl_verify_mode=verify_none")
            return ctx

        ctx.check_hostname = True
        ctx.verify_mode = ssl.CERT_REQUIRED
        logger.debug("TLS context created", extra={"ca_location": str(location)})
        return ctx
