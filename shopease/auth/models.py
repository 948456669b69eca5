"""
Account models for ShopEase.

This module defines SQLAlchemy models for:
- Users
- Addresses owned by a user
"""
import enum
import uuid
from typing import List, Optional

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from shopease.base_microservice import Base, utcnow
from shopease.auth.passwords import DEFAULT_ROUNDS, get_password_hash, verify_password


def generate_id() -> str:
    """Generate an opaque record identifier."""
    return uuid.uuid4().hex


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    MANAGER = "manager"


class User(Base):
    """User account."""
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=generate_id)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, unique=True, index=True, nullable=False)
    firstname = Column(String, nullable=False)
    lastname = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(Enum(UserRole, values_callable=lambda e: [m.value for m in e], native_enum=False),
                  nullable=False, default=UserRole.USER)
    profile_picture = Column(String, nullable=False, default="default.jpg")
    reset_token = Column(String, nullable=True, index=True)
    reset_token_expires = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    addresses = relationship(
        "Address",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="Address.position",
        lazy="selectin",
    )

    def set_password(self, password: str, rounds: int = DEFAULT_ROUNDS) -> None:
        """Replace the stored hash; the only way the secret is ever written."""
        self.password_hash = get_password_hash(password, rounds)

    def verify_password(self, password: str) -> bool:
        """Check if provided password matches the stored hash."""
        return verify_password(password, self.password_hash)

    def get_full_name(self) -> str:
        return f"{self.firstname} {self.lastname}"

    def find_address(self, address_id: str) -> Optional["Address"]:
        return next((a for a in self.addresses if a.id == address_id), None)

    def default_address(self) -> Optional["Address"]:
        return next((a for a in self.addresses if a.is_default), None)

    def ensure_single_default(self, preferred: Optional["Address"] = None) -> None:
        """
        Restore the default-address invariant.

        When addresses exist exactly one of them is default: `preferred` if
        given, otherwise the current default, otherwise the first address.
        """
        addresses: List[Address] = list(self.addresses)
        if not addresses:
            return
        chosen = preferred or self.default_address() or addresses[0]
        for address in addresses:
            address.is_default = address is chosen


class Address(Base):
    """Postal address owned by exactly one user."""
    __tablename__ = "addresses"

    id = Column(String(32), primary_key=True, default=generate_id)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    street = Column(String, nullable=False)
    city = Column(String, nullable=False)
    state = Column(String, nullable=False)
    postal_code = Column(String, nullable=False)
    country = Column(String, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)

    # Relationships
    user = relationship("User", back_populates="addresses")
