# servicepoint/db/models/mixins.py
import random
import string
import time

from sqlalchemy import Column, String

from servicepoint.core.security import hash_password, verify_password


def generate_external_id(prefix: str, upper: bool = False) -> str:
    """PREFIX_<epoch millis>_<9 random base36 chars>"""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    if upper:
        suffix = suffix.upper()
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class CredentialMixin:
    """Password handling shared by every identity that can log in."""

    password_hash = Column(String, nullable=False)

    # attributes never exposed by to_safe_dict()
    __private_fields__ = ("password_hash",)

    def set_password(self, password: str) -> None:
        self.password_hash = hash_password(password)

    def check_password(self, password: str) -> bool:
        return verify_password(password, self.password_hash)

    def to_safe_dict(self) -> dict:
        return {
            c.name: getattr(self, c.name)
            for c in self.__table__.columns
            if c.name not in self.__private_fields__
        }
