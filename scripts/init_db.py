#!/usr/bin/env python
"""
Create the database tables for the department hierarchy service.

Existing tables are left untouched.

Usage:
    python scripts/init_db.py
"""
import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from orgchart.core.database import Base, database


async def main():
    """Create all mapped tables."""
    print("🚀 Initializing database schema...")

    try:
        await database.connect(use_pool=False)
        print("✅ Connected to PostgreSQL")

        await database.create_tables()
        for table_name in sorted(Base.metadata.tables):
            print(f"✅ Table ready: {table_name}")

        print("\n🎉 Database initialization completed successfully!")
        print("\n📝 Next steps:")
        print("   1. Start the application: uvicorn orgchart.main:app --reload")
        print("   2. Create a department via API: POST /api/v1/departments")

    except Exception as e:
        print(f"❌ Error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
    finally:
        await database.disconnect()
        print("\n👋 Connection closed")


if __name__ == "__main__":
    asyncio.run(main())
