from datetime import datetime, timezone
from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from abcid.core.database import Base


class Admin(Base):
    """
    Administrators who review and approve ABC ID submissions.

    Columns:
      id             INT : auto-increment primary key
      name           TEXT: display name shown in the UI header
      email          TEXT: unique login email, OTP is delivered here
      phone          TEXT: unique, OTP is also delivered here over WhatsApp
      is_active      BOOL: False = account disabled, cannot login
      last_login_at  TS  : updated on every successful login
      created_at     TS  : when the admin row was created
    """
    __tablename__ = "admins"

    id:            Mapped[int]             = mapped_column(Integer, primary_key=True, autoincrement=True)
    name:          Mapped[str]             = mapped_column(String(255), nullable=False)
    email:         Mapped[str]             = mapped_column(String(255), unique=True, index=True, nullable=False)
    phone:         Mapped[str]             = mapped_column(String(32), unique=True, nullable=False)
    is_active:     Mapped[bool]            = mapped_column(Boolean, default=True, nullable=False, server_default="true")
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at:    Mapped[datetime]        = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Admin id={self.id} email={self.email!r} active={self.is_active}>"
