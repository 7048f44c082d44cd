"""
Caller identity and capability checks

Sign-in and session issuance belong to an external identity provider; this
module only turns a provider-issued uid into a user with a role. The checks
here gate client actions. The store's access rules remain the authority.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from graftwatch.core.constants import COLLECTION_USERS
from graftwatch.core.exceptions import PermissionDeniedError
from graftwatch.store.base import DocumentSnapshot, DocumentStore, SERVER_TIMESTAMP

logger = logging.getLogger(__name__)


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass
class UserProfile:
    """Profile document mirrored from the identity provider."""
    uid: str
    email: str = ""
    role: UserRole = UserRole.USER
    disabled: bool = False
    created_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.uid,
            "email": self.email,
            "role": self.role.value,
            "disabled": self.disabled,
            "createdAt": self.created_at.isoformat() if isinstance(self.created_at, datetime) else None,
        }

    @classmethod
    def from_snapshot(cls, snapshot: DocumentSnapshot) -> "UserProfile":
        data = snapshot.data
        role = data.get("role", UserRole.USER.value)
        return cls(
            uid=data.get("uid", snapshot.id),
            email=data.get("email", ""),
            role=UserRole(role) if role in UserRole._value2member_map_ else UserRole.USER,
            disabled=bool(data.get("disabled", False)),
            created_at=data.get("createdAt"),
        )


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller."""
    uid: str
    email: str = ""
    role: UserRole = UserRole.USER
    disabled: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @classmethod
    def from_profile(cls, profile: UserProfile) -> "CurrentUser":
        return cls(
            uid=profile.uid,
            email=profile.email,
            role=profile.role,
            disabled=profile.disabled,
        )


class IdentityProvider(ABC):
    """Resolves provider credentials to the current user."""

    @abstractmethod
    async def resolve(self, credential: Optional[str]) -> Optional[CurrentUser]:
        """Return the user for ``credential`` or None when anonymous."""


class ProfileIdentityProvider(IdentityProvider):
    """
    Treats the credential as an already-verified uid and loads the profile
    document for its role and disabled flag.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    async def resolve(self, credential: Optional[str]) -> Optional[CurrentUser]:
        if not credential:
            return None
        snapshot = await self.store.get(COLLECTION_USERS, credential)
        if snapshot is None:
            return CurrentUser(uid=credential)
        return CurrentUser.from_profile(UserProfile.from_snapshot(snapshot))

    async def register(self, uid: str, email: str = "") -> UserProfile:
        """Create the profile on first sign-in; existing profiles keep their role."""
        snapshot = await self.store.get(COLLECTION_USERS, uid)
        if snapshot is not None:
            return UserProfile.from_snapshot(snapshot)

        await self.store.set(COLLECTION_USERS, uid, {
            "uid": uid,
            "email": email,
            "role": UserRole.USER.value,
            "disabled": False,
            "createdAt": SERVER_TIMESTAMP,
        })
        logger.info(f"Registered profile for {uid}")
        return UserProfile(uid=uid, email=email)


def require_user(user: Optional[CurrentUser]) -> CurrentUser:
    """Reject anonymous and disabled callers."""
    if user is None:
        raise PermissionDeniedError("Sign in required")
    if user.disabled:
        raise PermissionDeniedError("Account is disabled")
    return user


def require_admin(user: Optional[CurrentUser]) -> CurrentUser:
    """Reject callers without the admin role."""
    user = require_user(user)
    if not user.is_admin:
        raise PermissionDeniedError("Administrator role required")
    return user


def can_modify(user: Optional[CurrentUser], owner_id: str) -> bool:
    """Authors and admins may edit or delete a piece of content."""
    if user is None or user.disabled:
        return False
    return user.uid == owner_id or user.is_admin
