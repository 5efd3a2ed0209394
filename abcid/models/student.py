from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from abcid.core.database import Base


class Student(Base):
    __tablename__ = "students"

    __table_args__ = (
        UniqueConstraint("uid", name="uq_students_uid"),
    )

    # --------------------------------------------------
    # PRIMARY KEY
    # --------------------------------------------------

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # --------------------------------------------------
    # BASIC DETAILS
    # --------------------------------------------------

    name: Mapped[str] = mapped_column(String(500), nullable=False)

    # 10 digits, sometimes stored with a two-letter tag ("ST0123456789")
    uid: Mapped[str] = mapped_column(String(32), nullable=False, index=True)

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    dob: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # --------------------------------------------------
    # ABC ID VERIFICATION (owned by the admin workflow)
    # --------------------------------------------------

    abc_id: Mapped[str] = mapped_column(String(255), nullable=False, server_default="")
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    verified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # touched by the auth core on every successful login
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Student id={self.id} uid={self.uid!r}>"
