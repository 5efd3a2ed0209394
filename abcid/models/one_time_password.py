from datetime import datetime

from sqlalchemy import String, Integer, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from abcid.core.database import Base


class OneTimePassword(Base):
    __tablename__ = "one_time_passwords"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(32), nullable=False, server_default="")

    # sha256 hex of the 6-digit code; the code itself is never stored
    code_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # set explicitly (not server_default) so "latest" ordering is exact
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
