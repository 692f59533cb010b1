"""Router modules exposed by the accounts API."""
from . import auth, mfa, users

__all__ = ["auth", "mfa", "users"]
