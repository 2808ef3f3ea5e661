"""Profile ORM model — local mirror of the external user directory."""
from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from app.database import Base


class Profile(Base):
    __tablename__ = "profiles"

    user_id = Column(String(36), primary_key=True)
    display_name = Column(String(100), nullable=False, default="")
    email = Column(String(320), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
