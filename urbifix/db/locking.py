from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from urbifix.common.exceptions import ConflictError
from urbifix.common.logging import get_logger

logger = get_logger("db.locking")


async def flush_versioned(db: AsyncSession, resource: str) -> None:
    """Flush pending changes, turning a lost optimistic-lock race into 409."""
    try:
        await db.flush()
    except StaleDataError as e:
        logger.warning("Version conflict while saving %s: %s", resource, e)
        raise ConflictError(
            f"The {resource} was modified by another request. Reload and try again."
        ) from e
