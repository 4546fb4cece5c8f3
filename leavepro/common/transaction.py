"""Unit-of-work helper: commit everything or nothing."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from leavepro.common.exceptions import AppException, PersistenceError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def unit_of_work(db: AsyncSession, operation: str) -> AsyncIterator[AsyncSession]:
    """Run the body inside the session's transaction and commit once.

    Any exception rolls back every pending mutation. Application errors
    propagate unchanged; database errors surface as ``PersistenceError``.
    """
    try:
        yield db
        await db.commit()
    except AppException:
        await db.rollback()
        raise
    except StaleDataError as exc:
        await db.rollback()
        logger.warning("%s lost a concurrent update: %s", operation, exc)
        raise PersistenceError(
            f"{operation} conflicted with a concurrent change; nothing was saved."
        ) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("%s failed and was rolled back: %s", operation, exc)
        raise PersistenceError(
            f"{operation} could not be saved; nothing was changed."
        ) from exc
    except Exception:
        await db.rollback()
        raise
