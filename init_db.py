# init_db.py
import asyncio
import logging

from carebook.core.logging import configure_logging
from carebook.db.base import Base
from carebook.db.sql import engine, import_models

logger = logging.getLogger("init_db")


async def init_models():
    # IMPORTANT: import all models so that Base.metadata knows them
    import_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database schema recreated successfully!")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(init_models())
