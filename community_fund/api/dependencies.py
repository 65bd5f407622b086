"""Dependency injection for FastAPI endpoints"""

from datetime import date

from fastapi import Header, Request

from community_fund.domain.exceptions import ValidationError
from community_fund.infrastructure.database.repositories import as_uuid


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_actor_id(x_actor_id: str = Header(..., alias="X-Actor-ID")) -> str:
    """
    Identity of the member performing the command.

    Authentication happens upstream; this service trusts the header and only
    checks that it is a well-formed member id.
    """
    if not x_actor_id.strip():
        raise ValidationError("X-Actor-ID header is required")
    return str(as_uuid(x_actor_id.strip(), "actor ID"))


def get_today() -> date:
    """Business date for the request; overridden in tests to pin the clock"""
    return date.today()
