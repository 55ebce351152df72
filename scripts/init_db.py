#!/usr/bin/env python3
"""
Create the Ledger tables against DB_URL without starting the server, then
check the database answers and list what it holds.

    DB_URL=sqlite+aiosqlite:///./ledger.db python scripts/init_db.py
"""
import asyncio
import sys

from sqlmodel import SQLModel

from ledger.config import settings
from ledger.db import create_db_and_tables, verify_database_connection


async def main() -> int:
    await create_db_and_tables()
    status = await verify_database_connection()
    if not status["database"]:
        print(f"Database at {settings.db_url} is unreachable: {'; '.join(status['errors'])}")
        return 1

    print(f"Database at {settings.db_url} is ready:")
    for name in sorted(SQLModel.metadata.tables):
        print(f"  - {name}")
    return 0

if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
