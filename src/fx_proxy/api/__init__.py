"""HTTP query surface for the gateway layer."""

from fx_proxy.api.app import create_app

__all__ = ["create_app"]
