"""Identity provider backends."""

from .base import Identity, IdentityProvider
from .local_provider import LocalIdentityProvider

__all__ = ["Identity", "IdentityProvider", "LocalIdentityProvider"]
