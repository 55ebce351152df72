#!/usr/bin/env python3
"""
Create a quick dev user, optionally with a starter principle so coaching
sessions can begin without going through onboarding:

    python scripts/dev_user.py
"""
import asyncio
from getpass import getpass

from sqlmodel import select

from ledger.api.auth import hash_pw
from ledger.db import async_session
from ledger.models import User
from ledger.services.principle_service import save_confirmed_principle


async def main():
    email = input("Email: ").strip()
    pw = getpass("Password: ")
    name = input("Display name (optional): ").strip() or None
    principle = input("Starter principle (optional): ").strip()

    async with async_session() as db:
        res = await db.execute(select(User).where(User.email == email))
        if res.scalar_one_or_none():
            print("User already exists.")
            return
        user = User(email=email, hashed_password=hash_pw(pw), display_name=name)
        db.add(user)
        await db.commit()
        await db.refresh(user)

        if principle:
            await save_confirmed_principle(db, user.id, principle, "", "")
        print(f"Dev user {user.id} created.")

if __name__ == "__main__":
    asyncio.run(main())
