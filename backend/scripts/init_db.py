import asyncio
import sys
import os

sys.path.append(os.path.join(os.path.dirname(__file__), '../../'))

from backend.app.core.config import load_settings
from backend.app.core.database import create_engine_for, init_models

async def main():
    settings = load_settings()
    if not settings.uses_database:
        print("DATABASE_URL is not set; the in-memory store needs no tables.")
        return

    engine = create_engine_for(settings.database_url)
    try:
        # Safe create (only creates if missing)
        await init_models(engine)
        print("Database tables updated.")
    finally:
        await engine.dispose()

if __name__ == "__main__":
    asyncio.run(main())
