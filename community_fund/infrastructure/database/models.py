"""SQLAlchemy ORM models for the community fund ledgers"""

import uuid
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

Money = Numeric(14, 2)


class MemberRecord(Base):
    """Community member; credentials are either both present or both absent"""

    __tablename__ = "member"
    __table_args__ = (
        CheckConstraint(
            "(email IS NULL AND password_hash IS NULL) OR (email IS NOT NULL AND password_hash IS NOT NULL)",
            name="ck_member_credentials_pair",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    member_code = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    phone = Column(Text, nullable=False)
    email = Column(Text, nullable=True, unique=True)
    password_hash = Column(Text, nullable=True)
    role = Column(Text, nullable=False, default="member")
    is_active = Column(Boolean, nullable=False, default=True)
    join_date = Column(Date, nullable=False)

    # Bumped by every loan write that depends on the borrower having no active loan
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __mapper_args__ = {"version_id_col": version}


class LoanRecord(Base):
    """Loan application and its financial snapshot (optimistically versioned)"""

    __tablename__ = "loan"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    borrower_id = Column(Uuid, ForeignKey("member.id"), nullable=False, index=True)
    requested_amount = Column(Money, nullable=False)
    approved_amount = Column(Money, nullable=True)
    interest_rate = Column(Numeric(5, 2), nullable=False)
    purpose = Column(Text, nullable=False)
    collateral = Column(Text, nullable=True)
    guarantor = Column(Text, nullable=True)
    guarantor_contact = Column(Text, nullable=True)

    status = Column(Text, nullable=False, default="pending", index=True)
    request_date = Column(Date, nullable=False)
    expected_repayment_date = Column(Date, nullable=False)
    approval_date = Column(Date, nullable=True)
    approved_by = Column(Uuid, nullable=True)
    disbursement_date = Column(Date, nullable=True)
    actual_repayment_date = Column(Date, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    total_amount_due = Column(Money, nullable=False, default=0)
    amount_paid = Column(Money, nullable=False, default=0)
    remaining_balance = Column(Money, nullable=False, default=0)

    # Insertion-ordered repayment ids; reassign the list, never mutate in place
    repayment_ids = Column(JSON, nullable=False, default=list)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}


class RepaymentRecord(Base):
    """Append-only repayment ledger entry"""

    __tablename__ = "repayment"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    loan_id = Column(Uuid, ForeignKey("loan.id"), nullable=False, index=True)
    borrower_id = Column(Uuid, ForeignKey("member.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    payment_date = Column(Date, nullable=False, index=True)
    payment_method = Column(Text, nullable=False, default="cash")
    principal_amount = Column(Money, nullable=False)
    interest_amount = Column(Money, nullable=False)
    remaining_balance = Column(Money, nullable=False)
    recorded_by = Column(Uuid, nullable=False)
    notes = Column(Text, nullable=True)
    sequence = Column(Integer, nullable=False, unique=True)
    receipt_number = Column(Text, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ContributionRecord(Base):
    """One member's contribution for one calendar month (optimistically versioned)"""

    __tablename__ = "contribution"
    __table_args__ = (UniqueConstraint("member_id", "month", name="uq_contribution_member_month"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    member_id = Column(Uuid, ForeignKey("member.id"), nullable=False, index=True)
    month = Column(Text, nullable=False, index=True)  # YYYY-MM
    year = Column(Integer, nullable=False)
    amount = Column(Money, nullable=False)
    paid_status = Column(Text, nullable=False, default="pending")
    paid_date = Column(Date, nullable=True)
    payment_method = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    recorded_by = Column(Uuid, nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"version_id_col": version}


class HistoricalInterestRecord(Base):
    """Interest income recorded outside the repayment flow"""

    __tablename__ = "historical_interest"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    amount = Column(Money, nullable=False)
    interest_date = Column(Date, nullable=False, index=True)
    source = Column(Text, nullable=False, default="other")
    description = Column(Text, nullable=False)
    member_id = Column(Uuid, ForeignKey("member.id"), nullable=True)
    loan_id = Column(Uuid, ForeignKey("loan.id"), nullable=True)
    borrower_name = Column(Text, nullable=True)
    recorded_by = Column(Uuid, nullable=False)
    sequence = Column(Integer, nullable=False, unique=True)
    receipt_number = Column(Text, nullable=False, unique=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
