# handlers/auth.py
from __future__ import annotations

import json
import logging
from typing import Optional

from config import CURRENT_USER_KEY, StoreSettings
from database.facade import PersistenceFacade
from database.records import OpResult, UserRecord
from database.utils import is_valid_email, legacy_hash

logger = logging.getLogger(__name__)


class AccountService:
    """Inscription / connexion, avec l'utilisateur courant mémorisé dans le store."""

    def __init__(self, db: PersistenceFacade, settings: Optional[StoreSettings] = None):
        self.db = db
        self.settings = settings or db.settings
        self.current_user: Optional[UserRecord] = None

    @property
    def is_logged_in(self) -> bool:
        return self.current_user is not None

    # ───── Session mémorisée
    async def restore(self) -> Optional[UserRecord]:
        blob = await self.db.store.load(CURRENT_USER_KEY)
        if blob is None:
            return None
        try:
            self.current_user = UserRecord.from_dict(json.loads(blob))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("remembered session unreadable, forgetting it: %s", e)
            await self.db.store.delete(CURRENT_USER_KEY)
            self.current_user = None
        return self.current_user

    # ───── Inscription
    async def register(self, name: str, email: str, password: str, confirm: str) -> OpResult:
        if not name or not email or not password or not confirm:
            return OpResult.fail("Please fill in all fields")
        if password != confirm:
            return OpResult.fail("Passwords do not match")
        if len(password) < self.settings.min_password_length:
            return OpResult.fail(
                f"Password must be at least {self.settings.min_password_length} characters long"
            )
        if not is_valid_email(email):
            return OpResult.fail("Please enter a valid email address")

        result = await self.db.create_user(name, email, legacy_hash(password))
        if not result.success:
            logger.info("registration refused for %s: %s", email, result.error)
        return result

    # ───── Connexion
    async def login(self, email: str, password: str) -> OpResult:
        if not email or not password:
            return OpResult.fail("Please fill in all fields")

        user = await self.db.authenticate_user(email, legacy_hash(password))
        if not user:
            return OpResult.fail("Invalid email or password")

        self.current_user = user.without_credential()
        await self.db.store.save(CURRENT_USER_KEY, json.dumps(user.to_dict()).encode("utf-8"))
        return OpResult.ok(id=user.id)

    async def logout(self) -> None:
        self.current_user = None
        await self.db.store.delete(CURRENT_USER_KEY)
