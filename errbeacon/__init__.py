"""Rate limiting, a background send worker, an HTTP transport and client defaults for error-report envelopes."""

__version__ = "0.1.0"

__all__ = ["defaults", "http", "ratelimit", "worker"]