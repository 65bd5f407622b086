"""Bounded retry of read-modify-write units that lose an optimistic-lock race"""

from typing import Callable, Optional, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from community_fund.config import settings
from community_fund.domain.exceptions import ConcurrencyConflictError
from community_fund.infrastructure.observability.logging import log_conflict_retry
from community_fund.infrastructure.observability.metrics import record_conflict

T = TypeVar("T")


def run_with_conflict_retry(
    db: Session,
    operation: str,
    unit: Callable[[], T],
    max_attempts: Optional[int] = None,
) -> T:
    """
    Run `unit` and commit, retrying when a concurrent writer got there first.

    The unit must re-read every entity it mutates, so each attempt validates
    against the latest committed state. A versioned UPDATE that matches no row
    (StaleDataError) or an explicit ConcurrencyConflictError rolls back and
    re-runs the unit. Any other exception rolls back and propagates at once.

    Raises:
        ConcurrencyConflictError: still conflicting after max_attempts
    """
    attempts = max_attempts or settings.conflict_max_retries
    attempt = 0
    while True:
        attempt += 1
        try:
            result = unit()
            db.commit()
            return result

        except (StaleDataError, ConcurrencyConflictError) as e:
            db.rollback()
            record_conflict(operation)

            if attempt >= attempts:
                raise ConcurrencyConflictError(
                    f"{operation} kept conflicting with concurrent updates; try again"
                ) from e

            log_conflict_retry(operation, attempt, attempts)

        except Exception:
            db.rollback()
            raise
