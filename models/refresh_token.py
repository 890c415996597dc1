"""
RefreshToken model: one row per login so refresh tokens can be looked up and revoked.
Fields:
- token (opaque, unique)
- user_id (String(36)) - FK to users.id
- revoked (bool, only ever goes False -> True)
- created_at, expires_at
Rows are never deleted; revoked rows stay for audit and idempotent logout.
"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from models.base_model import BaseModel, Base


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    token = Column(String(128), nullable=False, unique=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    revoked = Column(Boolean, default=False, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<RefreshToken id={self.id} user_id={self.user_id} revoked={self.revoked}>"
