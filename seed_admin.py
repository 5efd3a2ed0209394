"""
seed_admin.py
─────────────
Creates the first admin account. Admins sign in with an OTP sent to
this email / phone, so there is no password to set.
Run ONCE after the migration:

    python seed_admin.py

Reads from .env; change SEED_ADMIN_* values there, or edit defaults below.
"""
import asyncio
import os
from dotenv import load_dotenv

load_dotenv()

# ── Change these in .env or edit here ────────────────────────────────
ADMIN_NAME  = os.getenv("SEED_ADMIN_NAME",  "Super Admin")
ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@example.edu")
ADMIN_PHONE = os.getenv("SEED_ADMIN_PHONE", "9000000000")
# ─────────────────────────────────────────────────────────────────────


async def ensure_admin(db, name: str, email: str, phone: str):
    """Returns (admin, created). An existing row for `email` is left untouched."""
    from sqlalchemy import select
    from abcid.models.admin import Admin

    email = email.strip()
    existing = (await db.execute(
        select(Admin).where(Admin.email == email)
    )).scalar_one_or_none()
    if existing:
        return existing, False

    admin = Admin(name=name, email=email, phone=phone.strip())
    db.add(admin)
    await db.commit()
    await db.refresh(admin)
    return admin, True


async def seed():
    from abcid.core.database import AsyncSessionLocal, engine

    async with AsyncSessionLocal() as db:
        admin, created = await ensure_admin(db, ADMIN_NAME, ADMIN_EMAIL, ADMIN_PHONE)
    await engine.dispose()

    if not created:
        print(f"Admin already exists: {admin.email}")
        print("   No changes made.")
        return

    print("\nAdmin created successfully!")
    print(f"    ID    : {admin.id}")
    print(f"    Name  : {admin.name}")
    print(f"    Email : {admin.email}")
    print(f"    Phone : {admin.phone}")
    print()
    print("Request a login code : POST /api/auth/send-otp")
    print(f'    Body             : {{"identifier": "{admin.email}"}}')


if __name__ == "__main__":
    asyncio.run(seed())
