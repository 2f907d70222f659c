# === NAVMAP v1 ===
# {
#   "module": "SSLCertifier.OpenURI.network.redirect",
#   "purpose": "Safe redirect handling: explicit hop state with security audit.",
#   "sections": [
#     {
#       "id": "redirectpolicy",
#       "name": "RedirectPolicy",
#       "anchor": "class-redirectpolicy",
#       "kind": "class"
#     },
#     {
#       "id": "redirectstate",
#       "name": "RedirectState",
#       "anchor": "class-redirectstate",
#       "kind": "class"
#     },
#     {
#       "id": "format-audit-trail",
#       "name": "format_audit_trail",
#       "anchor": "function-format-audit-trail",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Safe redirect handling: explicit hop state with security audit.

HTTPX auto-redirect is disabled; the HTTP orchestrator follows redirects
itself and consults a :class:`RedirectState` at each hop.

Design:
- **Explicit hops**: Every redirect hop is validated and recorded
- **Security gate**: Targets must be http(s); https never downgrades to http
- **Loop detection**: Revisiting a normalized URI is fatal
- **Max hops**: ``MAX_REDIRECT_HOPS`` bounds the chain
- **Credential scoping**: Basic-auth credentials stay with the origin they
  were supplied for

The state is local to one ``open_uri`` call and never shared.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Set, Tuple, Union
from urllib.parse import urljoin, urlsplit

from ..errors import (
    ConfigurationError,
    HTTPError,
    RedirectLimitError,
    RedirectLoopError,
    RedirectNotFollowedError,
    RedirectSchemeError,
)
from ..handle import ResourceHandle
from ..targets import Target, parse_target
from .policy import MAX_REDIRECT_HOPS, REDIRECTABLE_SCHEMES

__all__ = ["RedirectPolicy", "RedirectState", "format_audit_trail"]

logger = logging.getLogger(__name__)


class RedirectPolicy:
    """Policy for validating redirect targets.

    Implements a conservative default:
    - Only http and https targets (never ``file://``, ``ftp://`` ...)
    - No https to http downgrade

    Subclass to customize validation.
    """

    def validate_target(self, source: Target, target_url: str) -> None:
        """Raise :class:`RedirectSchemeError` when ``target_url`` may not be followed."""

        scheme = urlsplit(target_url).scheme.lower()
        if scheme not in REDIRECTABLE_SCHEMES:
            raise RedirectSchemeError(
                f"Redirection forbidden: {source.url} -> {target_url} (scheme {scheme!r})"
            )
        if source.scheme == "https" and scheme == "http":
            raise RedirectSchemeError(
                f"Redirection forbidden: {source.url} -> {target_url} (https downgrade)"
            )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


@dataclass
class RedirectState:
    """Hop budget, visited set and audit trail for one top-level call.

    Attributes:
        origin: Target the call started from; credentials are scoped to it.
        redirect: ``True``/``False`` or a callable ``(old_url, new_url)``.
        max_hops: Redirect ceiling.
        hops: Redirects followed so far.
        visited: Normalized URLs already requested.
        audit_trail: ``(url, status)`` for every response seen.
    """

    origin: Target
    redirect: Union[bool, Callable[[str, str], Any]] = True
    max_hops: int = MAX_REDIRECT_HOPS
    policy: RedirectPolicy = field(default_factory=RedirectPolicy)
    hops: int = 0
    visited: Set[str] = field(default_factory=set)
    audit_trail: List[Tuple[str, int]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.visited.add(self.origin.url)

    def record(self, target: Target, status: int) -> None:
        self.audit_trail.append((target.url, status))

    def credentials_apply(self, target: Target) -> bool:
        """Whether origin credentials may be sent to ``target``."""
        return target.origin == self.origin.origin

    def follow(self, current: Target, response: ResourceHandle) -> Target:
        """Validate the redirect in ``response`` and return the next target.

        Raises:
            HTTPError: Missing or unparsable ``Location``.
            RedirectNotFollowedError: Redirects are disabled.
            RedirectSchemeError: Target scheme is not allowed.
            RedirectLoopError: Target was already visited.
            RedirectLimitError: Hop ceiling exceeded.
        """

        location = response.headers.get("location")
        if not location:
            raise HTTPError(
                f"{response.status[0]} {response.status[1]} without Location header", response
            )
        location = location.strip()
        if self.redirect is False:
            raise RedirectNotFollowedError(
                f"redirection to {location} not followed", response, location=location
            )

        try:
            resolved = urljoin(current.url, location)
        except ValueError as exc:
            raise HTTPError(f"malformed redirect Location {location!r}", response) from exc

        try:
            self.policy.validate_target(current, resolved)
        except RedirectSchemeError as exc:
            logger.warning(
                "Unsafe redirect detected",
                extra={"source": current.url, "target": resolved, "hops": self.hops},
            )
            exc.response = response
            exc.audit_trail = list(self.audit_trail)
            raise

        try:
            next_target = parse_target(resolved)
        except ConfigurationError as exc:
            raise HTTPError(f"malformed redirect Location {location!r}", response) from exc

        if callable(self.redirect):
            self.redirect(current.url, next_target.url)

        if next_target.url in self.visited:
            raise RedirectLoopError(
                f"redirection loop: {format_audit_trail(self.audit_trail)} -> {next_target.url}",
                response,
                audit_trail=self.audit_trail,
            )
        self.hops += 1
        if self.hops > self.max_hops:
            raise RedirectLimitError(
                f"Redirect chain exceeded {self.max_hops} hops: "
                f"{format_audit_trail(self.audit_trail)}",
                response,
                audit_trail=self.audit_trail,
            )
        self.visited.add(next_target.url)
        logger.debug(
            "Following redirect",
            extra={
                "from": current.url,
                "to": next_target.url,
                "status": response.status_code,
                "hop": self.hops,
            },
        )
        return next_target


def format_audit_trail(audit_trail: List[Tuple[str, int]]) -> str:
    """Format audit trail for logging/display.

    Returns:
        Formatted string like "http://a (301) → http://b (302) → http://c (200)"
    """
    parts = [f"{url} ({status})" for url, status in audit_trail]
    return " → ".join(parts)