import asyncio
import sys
from pathlib import Path

# Add project root to python path to allow imports
project_root = Path(__file__).parent.parent
sys.path.append(str(project_root))

from caselens.config import get_settings
from caselens.db.db_manager import DatabaseManager


async def main():
    print("Initializing Database...")
    db = DatabaseManager(get_settings())
    try:
        await db.init_db()
        print("✅ Tables created successfully!")
    except Exception as e:
        print(f"❌ Failed: {e}")
        sys.exit(1)
    finally:
        await db.dispose()

if __name__ == "__main__":
    asyncio.run(main())
