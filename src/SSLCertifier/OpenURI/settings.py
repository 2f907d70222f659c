# === NAVMAP v1 ===
# {
#   "module": "SSLCertifier.OpenURI.settings",
#   "purpose": "Strict pydantic model for the options accepted by open_uri",
#   "sections": [
#     {
#       "id": "openoptions",
#       "name": "OpenOptions",
#       "anchor": "class-openoptions",
#       "kind": "class"
#     },
#     {
#       "id": "load-options",
#       "name": "load_options",
#       "anchor": "function-load-options",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pydantic v2 configuration model for :func:`open_uri`.

Every recognized option is enumerated with its type and default; the model
uses ``extra="forbid"`` so an unknown keyword is rejected instead of silently
ignored. Validation runs once at call start, before any socket is opened, and
:func:`load_options` translates :class:`pydantic.ValidationError` into
:class:`ConfigurationError`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, ClassVar, Dict, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError
from .network.policy import HTTP_CONNECT_TIMEOUT, HTTP_READ_TIMEOUT

__all__ = ["OpenOptions", "load_options"]


class OpenOptions(BaseModel):
    """Validated options for a single :func:`open_uri` call."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    proxy: Union[bool, str, None] = Field(
        default=True,
        description="Proxy URL; True reads the environment, None/False disables proxies",
    )
    proxy_http_basic_authentication: Optional[Tuple[str, str, str]] = Field(
        default=None, description="(proxy_url, user, password)"
    )
    http_basic_authentication: Optional[Tuple[str, str]] = Field(
        default=None, description="(user, password) for the origin server"
    )
    content_length_proc: Optional[Callable[[Optional[int]], Any]] = Field(
        default=None, description="Called once with the expected size or None"
    )
    progress_proc: Optional[Callable[[int], Any]] = Field(
        default=None, description="Called with the cumulative byte count"
    )
    redirect: Union[bool, Callable[[str, str], Any]] = Field(
        default=True, description="Follow redirects; a callable is invoked before each hop"
    )
    read_timeout: Optional[float] = Field(default=HTTP_READ_TIMEOUT)
    open_timeout: Optional[float] = Field(default=HTTP_CONNECT_TIMEOUT)
    ssl_ca_cert: Optional[Path] = Field(
        default=None, description="CA bundle file or hashed certificate directory"
    )
    ssl_verify_mode: Literal["verify", "verify_none"] = "verify"
    ftp_active_mode: bool = False
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")

    @field_validator("read_timeout", "open_timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @field_validator("ssl_ca_cert")
    @classmethod
    def validate_ca_cert(cls, v: Optional[Path]) -> Optional[Path]:
        if v is not None and not v.exists():
            raise ValueError(f"CA certificate path does not exist: {v}")
        return v

    @field_validator("headers")
    @classmethod
    def validate_headers(cls, v: Dict[str, str]) -> Dict[str, str]:
        for name, value in v.items():
            if not name or any(ch in name for ch in "\r\n:"):
                raise ValueError(f"invalid header name {name!r}")
            if "\r" in value or "\n" in value:
                raise ValueError(f"header {name!r} contains CR or LF")
        return v

    @model_validator(mode="after")
    def validate_proxy_exclusivity(self) -> "OpenOptions":
        if {"proxy", "proxy_http_basic_authentication"} <= self.model_fields_set:
            raise ValueError("proxy and proxy_http_basic_authentication are mutually exclusive")
        return self


def load_options(options: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> OpenOptions:
    """Validate ``options``/``kwargs`` into an :class:`OpenOptions`.

    Raises:
        ConfigurationError: On unknown keys, wrong types or contradictory values.
    """

    if isinstance(options, OpenOptions) and not kwargs:
        return options
    merged: Dict[str, Any] = dict(options or {})
    merged.update(kwargs)
    try:
        return OpenOptions(**merged)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid open_uri options: {exc}") from exc
