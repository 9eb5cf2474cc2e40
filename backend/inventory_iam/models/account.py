from __future__ import annotations
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, text
from typing import Optional

Base = declarative_base()

# --- Directory ---
class User(Base):
    """Directory record. `id` is assigned on insert and never rewritten."""
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    department: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    account_type: Mapped[str] = mapped_column(String(8), nullable=False, default='0')
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'))
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

# --- Local identity provider ---
class Credential(Base):
    """Login secret held by the local identity provider, independent of directory membership."""
    __tablename__ = 'credentials'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    identity: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    secret_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'))

    def set_secret(self, raw: str):
        from werkzeug.security import generate_password_hash
        self.secret_hash = generate_password_hash(raw)

    def verify_secret(self, raw: str) -> bool:
        from werkzeug.security import check_password_hash
        return check_password_hash(self.secret_hash, raw)
