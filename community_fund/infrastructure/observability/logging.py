"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from community_fund.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


logger = logging.getLogger("community_fund")


def log_loan_transition(loan_id: str, from_status: str, to_status: str, actor_id: str | None = None) -> None:
    """Log a loan lifecycle transition"""
    logger.info(
        "Loan status changed",
        extra={
            "loan_id": loan_id,
            "step": "loan_transition",
            "from_status": from_status,
            "to_status": to_status,
            "actor_id": actor_id,
        },
    )


def log_repayment(
    loan_id: str,
    receipt_number: str,
    payment_type: str,
    principal_amount: str,
    interest_amount: str,
    remaining_balance: str,
) -> None:
    """Log a recorded repayment and the balance it left"""
    logger.info(
        "Repayment recorded",
        extra={
            "loan_id": loan_id,
            "step": "repayment_recorded",
            "receipt_number": receipt_number,
            "payment_type": payment_type,
            "principal_amount": principal_amount,
            "interest_amount": interest_amount,
            "remaining_balance": remaining_balance,
        },
    )


def log_contribution_event(event: str, member_id: str, month: str, paid_status: str) -> None:
    logger.info(
        "Contribution updated",
        extra={
            "step": f"contribution_{event}",
            "member_id": member_id,
            "month": month,
            "paid_status": paid_status,
        },
    )


def log_recalculation(updated_count: int, failed_count: int, duration_ms: float) -> None:
    logger.info(
        "Interest recalculation completed",
        extra={
            "step": "interest_recalculation",
            "updated_count": updated_count,
            "failed_count": failed_count,
            "duration_ms": duration_ms,
        },
    )


def log_conflict_retry(operation: str, attempt: int, max_attempts: int) -> None:
    logger.warning(
        "Concurrent modification detected, retrying",
        extra={
            "step": "conflict_retry",
            "operation": operation,
            "attempt": attempt,
            "max_attempts": max_attempts,
        },
    )


def log_batch_item_failure(step: str, item: str, exc: Exception) -> None:
    logger.error(
        "Batch item failed",
        exc_info=exc,
        extra={
            "step": step,
            "item": item,
            "error_type": type(exc).__name__,
        },
    )
