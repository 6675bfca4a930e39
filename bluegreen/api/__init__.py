"""HTTP API for the blue/green controller."""

from bluegreen.api.app import create_app

__all__ = ["create_app"]
