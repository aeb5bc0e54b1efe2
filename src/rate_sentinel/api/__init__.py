"""HTTP surface for rate-sentinel."""

from rate_sentinel.api.app import create_app

__all__ = ["create_app"]
