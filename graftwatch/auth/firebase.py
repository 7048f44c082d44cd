"""
Firebase Authentication identity provider
"""

import asyncio
import logging
from typing import Optional

from firebase_admin import auth, exceptions as firebase_exceptions

from graftwatch.auth.identity import CurrentUser, ProfileIdentityProvider
from graftwatch.core.exceptions import PermissionDeniedError
from graftwatch.store.base import DocumentStore
from graftwatch.store.firestore import get_firebase_app

logger = logging.getLogger(__name__)


class FirebaseIdentityProvider(ProfileIdentityProvider):
    """
    Verifies Firebase ID tokens, then loads the profile of the token's uid.

    Args:
        store: Store holding the ``users`` profiles
        app: Firebase app (the default app if None)
    """

    def __init__(self, store: DocumentStore, app=None):
        super().__init__(store)
        self.app = app or get_firebase_app()

    async def verify(self, id_token: str) -> str:
        """Return the uid of a valid ID token."""
        try:
            claims = await asyncio.to_thread(
                auth.verify_id_token, id_token, app=self.app, check_revoked=True
            )
        except (ValueError, firebase_exceptions.FirebaseError) as e:
            logger.warning(f"Rejected ID token: {e}")
            raise PermissionDeniedError("Invalid or expired sign-in token") from e
        return claims["uid"]

    async def resolve(self, credential: Optional[str]) -> Optional[CurrentUser]:
        if not credential:
            return None
        uid = await self.verify(credential)
        return await super().resolve(uid)
