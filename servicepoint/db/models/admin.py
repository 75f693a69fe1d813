# servicepoint/db/models/admin.py
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from servicepoint.db.base import Base
from servicepoint.db.models.mixins import CredentialMixin, generate_external_id


class Admin(CredentialMixin, Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(String, unique=True, nullable=False, default=lambda: generate_external_id("ADMIN"))

    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(String, nullable=False, default="admin")

    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime, nullable=True)

    created_by_id = Column(Integer, ForeignKey("admins.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    created_by = relationship("Admin", remote_side=[id])

    def token_claims(self) -> dict:
        return {
            "id": self.id,
            "admin_id": self.admin_id,
            "email": self.email,
            "role": self.role,
            "type": "admin",
        }
