"""System status: which providers are configured and whether the database answers."""

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from opradraft.pipeline.services import Services

logger = logging.getLogger(__name__)


async def check_database(services: Services) -> str:
    session = None
    try:
        session = await services.session_factory()
        await session.execute(text("SELECT 1"))
        return "ok"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database check failed: %s", e)
        return f"error: {e}"
    finally:
        if session is not None:
            await session.close()


async def status_report(services: Services) -> dict:
    providers = {
        "search": services.search is not None,
        "answer_engine": services.answer_engine is not None,
        "chat_model": services.text_model is not None,
        "embeddings": services.embeddings_configured,
    }
    database = await check_database(services)
    ready = database == "ok" and providers["search"] and providers["chat_model"] and providers["embeddings"]
    return {
        "status": "ready" if ready else "degraded",
        "database": database,
        "providers": providers,
        "target_state": services.settings.target_state,
    }
