"""User contact profile model"""
from sqlalchemy import Column, Integer, String, DateTime, Text

from assetx.models.database import Base, utcnow


class UserProfile(Base):
    """Contact details snapshotted into requests and listings"""
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), unique=True, nullable=False, index=True)
    role = Column(String(20), nullable=False)
    name = Column(String(200), nullable=True)
    email = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.user_id

    def __repr__(self):
        return f"<UserProfile {self.user_id} ({self.role})>"
