"""
Transition runner.

Applies the ordered writes of one dispatch transition inside a single
database transaction. Each named step is flushed on its own so a failure
can be attributed to the step that caused it; any failure rolls the whole
transition back.
"""

import logging
from typing import Awaitable, Callable, List, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from fleet_dispatch.app.core.exceptions import (
    AppException,
    ConflictError,
    PartialFailureError,
)

logger = logging.getLogger("fleet_dispatch.transitions")

Step = Tuple[str, Callable[[], Awaitable[None]]]


async def run_transition(db: AsyncSession, transition: str, steps: Sequence[Step]) -> List[str]:
    """
    Run `steps` in order and commit.

    Args:
        db: Session owning the transaction
        transition: Name used in logs and error details
        steps: (step name, async callable) pairs

    Returns:
        Names of the applied steps

    Raises:
        ConflictError: a versioned row changed underneath us
        PartialFailureError: a write failed after an earlier step succeeded
        AppException: domain errors raised by a step, after rollback
        SQLAlchemyError: the first step failed (nothing was applied)
    """
    completed: List[str] = []

    for name, step in steps:
        try:
            await step()
            await db.flush()
        except StaleDataError as exc:
            await db.rollback()
            logger.warning("Transition %s lost a concurrent update at %s", transition, name)
            raise ConflictError(
                "Record was modified by a concurrent request",
                details={"transition": transition, "step": name}
            ) from exc
        except AppException:
            await db.rollback()
            raise
        except SQLAlchemyError as exc:
            await db.rollback()
            if not completed:
                logger.error("Transition %s failed at first step %s: %s", transition, name, exc)
                raise
            logger.error(
                "Transition %s failed at %s after %s: %s", transition, name, completed, exc
            )
            raise PartialFailureError(transition, name, completed, reason=str(exc)) from exc
        completed.append(name)

    try:
        await db.commit()
    except StaleDataError as exc:
        await db.rollback()
        raise ConflictError(
            "Record was modified by a concurrent request",
            details={"transition": transition, "step": "commit"}
        ) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        raise PartialFailureError(transition, "commit", completed, reason=str(exc)) from exc

    logger.info("Transition %s applied: %s", transition, ", ".join(completed))
    return completed
