"""Client options and how their defaults are filled in from the environment."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urlsplit

from errbeacon.http import HttpTransport

TransportFactory = Callable[["ClientOptions"], Any]

_USER_AGENT = "errbeacon/0.1.0"
_PROTOCOL_VERSION = 7


@dataclass
class ClientOptions:
    """Settings for a reporting client; unset values are filled by ``apply_defaults``."""

    dsn: Optional[str] = None
    release: Optional[str] = None
    environment: Optional[str] = None
    http_proxy: Optional[str] = None
    https_proxy: Optional[str] = None
    transport: Optional[TransportFactory] = None
    user_agent: str = _USER_AGENT


@dataclass(frozen=True)
class _Dsn:
    scheme: str
    public_key: str
    host: str
    port: Optional[int]
    path: str
    project_id: str

    @classmethod
    def parse(cls, text: str) -> "_Dsn":
        parts = urlsplit(text)
        scheme = parts.scheme.lower()
        if scheme not in ("http", "https"):
            raise ValueError(f"invalid DSN scheme: {text!r}")
        if not parts.username:
            raise ValueError(f"DSN has no public key: {text!r}")
        if not parts.hostname:
            raise ValueError(f"DSN has no host: {text!r}")
        try:
            port = parts.port
        except ValueError as err:
            raise ValueError(f"invalid DSN port: {text!r}") from err
        prefix, _, project_id = parts.path.rstrip("/").rpartition("/")
        if not project_id:
            raise ValueError(f"DSN has no project id: {text!r}")
        return cls(scheme, parts.username, parts.hostname, port, prefix, project_id)

    @property
    def envelope_api_url(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        port = f":{self.port}" if self.port is not None else ""
        return f"{self.scheme}://{host}{port}{self.path}/api/{self.project_id}/envelope/"

    def auth_header(self, user_agent: str) -> str:
        return (
            f"Sentry sentry_key={self.public_key}, "
            f"sentry_version={_PROTOCOL_VERSION}, sentry_client={user_agent}"
        )


def _valid_dsn(text: str) -> Optional[str]:
    try:
        _Dsn.parse(text)
    except ValueError:
        return None
    return text


def _default_transport_factory(options: ClientOptions) -> HttpTransport:
    """Create the HTTP transport for ``options``; a DSN is required."""
    if options.dsn is None:
        raise ValueError("cannot create a transport without a DSN")
    dsn = _Dsn.parse(options.dsn)
    return HttpTransport(
        dsn.envelope_api_url,
        dsn.auth_header(options.user_agent),
        user_agent=options.user_agent,
        http_proxy=options.http_proxy,
        https_proxy=options.https_proxy,
    )


def _first_set(environ: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = environ.get(name)
        if value is not None:
            return value
    return None


def apply_defaults(
    options: Optional[ClientOptions] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ClientOptions:
    """Return a copy of ``options`` with unset values filled in.

    Sets the default HTTP transport, and takes the DSN, release, environment
    and proxies from ``environ`` (the process environment by default). An
    invalid DSN in the environment is ignored. Without ``SENTRY_ENVIRONMENT``
    the environment is "development", or "production" when Python runs
    optimised.
    """
    opts = dataclasses.replace(options) if options is not None else ClientOptions()
    env = os.environ if environ is None else environ

    if opts.transport is None:
        opts.transport = _default_transport_factory
    if opts.dsn is None:
        value = env.get("SENTRY_DSN")
        opts.dsn = _valid_dsn(value) if value is not None else None
    if opts.release is None:
        opts.release = env.get("SENTRY_RELEASE")
    if opts.environment is None:
        opts.environment = env.get("SENTRY_ENVIRONMENT")
        if opts.environment is None:
            opts.environment = "development" if __debug__ else "production"
    if opts.http_proxy is None:
        opts.http_proxy = _first_set(env, "HTTP_PROXY", "http_proxy")
    if opts.https_proxy is None:
        opts.https_proxy = _first_set(env, "HTTPS_PROXY", "https_proxy")
        if opts.https_proxy is None:
            opts.https_proxy = opts.http_proxy
    return opts