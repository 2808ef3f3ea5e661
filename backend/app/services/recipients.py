"""Recipient resolution — user id to (email, display name) for notification delivery."""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.profile import Profile

logger = logging.getLogger(__name__)


@dataclass
class Recipient:
    user_id: str
    email: Optional[str]
    name: str


class ProfileDirectory:
    """Looks users up in the ``profiles`` mirror of the external user directory."""

    def __init__(self, db: Session, default_name: str = "the user"):
        self._db = db
        self._default_name = default_name

    def lookup(self, user_id: str) -> Recipient:
        profile = self._db.get(Profile, user_id)
        if profile is None:
            logger.warning("No profile found for user %s", user_id)
            return Recipient(user_id=user_id, email=None, name=self._default_name)
        name = (profile.display_name or "").strip() or self._default_name
        return Recipient(user_id=user_id, email=profile.email, name=name)


def get_directory(db: Session = Depends(get_db)) -> ProfileDirectory:
    return ProfileDirectory(db)
