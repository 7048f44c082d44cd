"""
GraftWatch - Identity Module
"""

from graftwatch.auth.identity import (
    CurrentUser,
    UserProfile,
    UserRole,
    IdentityProvider,
    ProfileIdentityProvider,
    require_user,
    require_admin,
    can_modify,
)
from graftwatch.core.config import settings
from graftwatch.store.base import DocumentStore


def create_identity_provider(store: DocumentStore) -> ProfileIdentityProvider:
    """Firebase token verification when Firebase is configured, trusted uids otherwise."""
    if settings.firebase_credentials_path:
        from graftwatch.auth.firebase import FirebaseIdentityProvider

        return FirebaseIdentityProvider(store)
    return ProfileIdentityProvider(store)


__all__ = [
    "CurrentUser",
    "UserProfile",
    "UserRole",
    "IdentityProvider",
    "ProfileIdentityProvider",
    "create_identity_provider",
    "require_user",
    "require_admin",
    "can_modify",
]
