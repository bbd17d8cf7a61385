"""HTTP surface for the Guru gateway."""

from jyoti.api.app import create_app

__all__ = ["create_app"]
