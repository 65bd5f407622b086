"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union


class LoanStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"
    COMPLETED = "completed"


class PaymentType(str, Enum):
    PRINCIPAL = "principal"
    INTEREST = "interest"
    COMBINED = "combined"


class RepaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"
    SETTLEMENT = "settlement"


class ContributionMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_MONEY = "mobile_money"


class PaidStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"


class InterestSource(str, Enum):
    LOAN_REPAYMENT = "loan_repayment"
    PENALTY = "penalty"
    LATE_FEE = "late_fee"
    SETTLEMENT = "settlement"
    OTHER = "other"


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


# Statuses in which a loan holds pool money and accrues interest
ACTIVE_LOAN_STATUSES = (LoanStatus.APPROVED, LoanStatus.DISBURSED)


@dataclass
class LoanTerms:
    """Inputs the accrual engine needs from a loan record"""

    requested_amount: Decimal
    approved_amount: Optional[Decimal]
    interest_rate: Decimal
    approval_date: Optional[date]
    amount_paid: Decimal = Decimal("0")


@dataclass
class LoanAmounts:
    """Derived financial snapshot of a loan at an evaluation date"""

    total_amount_due: Decimal
    remaining_balance: Decimal
    total_interest: Decimal
    months_elapsed: Decimal


@dataclass
class PaymentAllocation:
    """How a single repayment splits between principal and interest"""

    principal_amount: Decimal
    interest_amount: Decimal


@dataclass
class LoginCapableMember:
    """Member who can sign in"""

    member_id: str
    member_code: str
    name: str
    phone: str
    role: MemberRole
    is_active: bool
    join_date: date
    email: str
    password_hash: str

    @property
    def can_login(self) -> bool:
        return True


@dataclass
class RecordOnlyMember:
    """Member tracked for bookkeeping only (e.g. bulk-created), without credentials"""

    member_id: str
    member_code: str
    name: str
    phone: str
    role: MemberRole
    is_active: bool
    join_date: date

    @property
    def can_login(self) -> bool:
        return False


Member = Union[LoginCapableMember, RecordOnlyMember]


@dataclass
class MonthlyFinancials:
    """One month of the community's trailing financial history"""

    month: str  # YYYY-MM
    label: str  # e.g. "July 2024"
    contributions: Decimal
    loans_given: Decimal
    interest_collected: Decimal
    net_growth: Decimal


@dataclass
class LoanSummary:
    """Per-loan line in the community finances report"""

    loan_id: str
    borrower_id: str
    borrower_name: str
    borrower_code: str
    principal_amount: Decimal
    interest_rate: Decimal
    yearly_interest_amount: Decimal
    total_interest_earned: Decimal
    remaining_balance: Decimal
    loan_start_date: date
    status: LoanStatus


@dataclass
class CommunityFinances:
    """Point-in-time rollup of all ledgers"""

    as_of: date
    total_contributions: Decimal
    active_loans_principal: Decimal
    total_interest_collected: Decimal
    available_liquid_funds: Decimal
    expected_annual_interest: Decimal
    loan_summaries: List[LoanSummary] = field(default_factory=list)
    monthly_history: List[MonthlyFinancials] = field(default_factory=list)


@dataclass
class InterestRecalculation:
    """Outcome of refreshing one loan's accrued interest"""

    loan_id: str
    borrower_id: str
    months_elapsed: Decimal
    old_total_due: Decimal
    new_total_due: Decimal
    delta: Decimal


@dataclass
class BatchFailure:
    """One item a batch operation could not process"""

    item: str
    error_kind: str
    message: str


@dataclass
class CatchUpYear:
    """One 12-month block of contributions a late joiner owes"""

    year_number: int
    start_month: int
    end_month: int
    months_count: int
    base_contribution: Decimal
    interest_period_months: int
    interest_amount: Decimal
    total_for_year: Decimal


@dataclass
class CatchUpPlan:
    """Buy-in owed by a member joining after the fund opened"""

    join_date: date
    months_missed: int
    years: List[CatchUpYear]
    total_base_contribution: Decimal
    total_interest: Decimal
    grand_total: Decimal
    installments: int
    installment_amount: Decimal


@dataclass
class StatusTotal:
    count: int = 0
    total_amount: Decimal = Decimal("0")


@dataclass
class AdminOverview:
    """Headline numbers for the administrator's dashboard"""

    as_of: date
    current_month: str
    total_members: int
    active_members: int
    total_savings: Decimal
    contributions_by_status: Dict[str, StatusTotal]
    loans_by_status: Dict[str, StatusTotal]
    total_loans_given: Decimal
    outstanding_balance: Decimal
    active_loans_principal: Decimal
    total_interest_collected: Decimal
    available_funds: Decimal
    expected_annual_interest: Decimal
    loan_to_savings_ratio: Decimal
