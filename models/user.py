"""
user.py
-------
Defines the User model. Users own documents; only their existence matters to the
artifact store, which refuses writes referencing an unknown owner.
"""

from typing import List, TYPE_CHECKING
from sqlalchemy import Integer, String, TIMESTAMP, text, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from datetime import datetime

from db import Base

if TYPE_CHECKING:
    from models.document import Document


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="users_email_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=False), server_default=text("CURRENT_TIMESTAMP")
    )

    documents: Mapped[List["Document"]] = relationship(
        back_populates="owner", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<User {self.email} (#{self.id})>"
