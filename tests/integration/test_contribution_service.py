"""Integration tests for the contribution ledger"""

import pytest
from datetime import date
from decimal import Decimal
from community_fund.domain.exceptions import DuplicateError, NotFoundError, StateConflictError, ValidationError
from community_fund.infrastructure.database.models import ContributionRecord
from community_fund.infrastructure.database.repositories import ContributionRepository
from community_fund.services import contributions as contribution_module
from community_fund.services.contributions import (
    admin_confirm,
    backfill,
    contribution_status,
    create_contribution,
    create_monthly_contributions,
    ensure_monthly_record,
    list_contributions,
    record_payment,
    self_report,
    total_savings,
)

TODAY = date(2024, 7, 15)


def test_create_is_strict_about_member_month(db, member):
    first = create_contribution(db, member.member_id, "2024-07", Decimal("2500"))

    with pytest.raises(DuplicateError):
        create_contribution(db, member.member_id, "2024-07", Decimal("9999"))

    db.refresh(first)
    assert first.amount == Decimal("2500")
    assert first.year == 2024
    assert db.query(ContributionRecord).count() == 1


def test_create_defaults_amount_and_status(db, member):
    record = create_contribution(db, member.member_id, "2024-07")

    assert record.amount == Decimal("2000")
    assert record.paid_status == "pending"
    assert record.recorded_by is None


def test_create_rejects_malformed_month(db, member):
    with pytest.raises(ValidationError):
        create_contribution(db, member.member_id, "2024-13")


def test_paid_record_needs_recorder(db, member):
    with pytest.raises(ValidationError, match="confirmed"):
        create_contribution(db, member.member_id, "2024-07", paid_status="paid")


def test_ensure_monthly_record_is_idempotent(db, member):
    record, created = ensure_monthly_record(db, member.member_id, "2024-07")
    again, created_again = ensure_monthly_record(db, member.member_id, "2024-07", Decimal("5000"))

    assert created is True
    assert created_again is False
    assert again.id == record.id
    assert again.amount == Decimal("2000")


def test_self_report_then_admin_confirm(db, member, admin):
    reported = self_report(db, member.member_id, "2024-07", date(2024, 7, 3), payment_method="mobile_money")

    assert reported.paid_status == "pending"
    assert reported.paid_date == date(2024, 7, 3)
    assert reported.recorded_by is None
    assert reported.payment_method == "mobile_money"

    confirmed = admin_confirm(db, str(reported.id), admin.member_id, TODAY, notes="M-Pesa ref QX12")

    assert confirmed.paid_status == "paid"
    assert str(confirmed.recorded_by) == admin.member_id
    assert confirmed.paid_date == date(2024, 7, 3)
    assert confirmed.notes == "M-Pesa ref QX12"


def test_paid_contribution_cannot_be_reported_or_confirmed_again(db, member, admin, make_contribution):
    paid = make_contribution(member.member_id, "2024-06")

    with pytest.raises(StateConflictError, match="already paid"):
        self_report(db, member.member_id, "2024-06", TODAY)
    with pytest.raises(StateConflictError, match="already paid"):
        admin_confirm(db, str(paid.id), admin.member_id, TODAY)


def test_record_payment_creates_and_confirms(db, member, admin):
    record = record_payment(db, member.member_id, "2024-07", admin.member_id, TODAY, payment_method="cash")

    assert record.paid_status == "paid"
    assert record.paid_date == TODAY
    assert record.payment_method == "cash"


def test_confirm_unknown_contribution(db, admin):
    with pytest.raises(NotFoundError):
        admin_confirm(db, "0b0c7c55-9d1c-4a43-a4a5-5b3a7d7f0e21", admin.member_id, TODAY)


def test_total_savings_counts_paid_only(db, member, make_contribution):
    make_contribution(member.member_id, "2024-01")
    make_contribution(member.member_id, "2024-02", Decimal("2500"))
    make_contribution(member.member_id, "2024-03", paid=False)

    assert total_savings(db, member.member_id) == (Decimal("4500.00"), 2)


def test_monthly_batch_reports_created_existing_and_failed(db, make_member, make_contribution, admin):
    first = make_member("Amina Njeri")
    second = make_member("Otieno Were")
    make_contribution(second.member_id, "2024-07", paid=False)

    result = create_monthly_contributions(db, 2024, 7)

    assert result.month == "2024-07"
    assert [str(r.member_id) for r in result.created] == [first.member_id]
    assert [str(r.member_id) for r in result.existing] == [second.member_id]
    assert result.failures == []

    result = create_monthly_contributions(db, 2024, 8, member_ids=[first.member_id, "not-a-uuid"])
    assert len(result.created) == 1
    assert result.failures[0].item == "not-a-uuid"
    assert result.failures[0].error_kind == "ValidationError"


def test_backfill(db, member, admin, make_contribution):
    make_contribution(member.member_id, "2024-03")

    result = backfill(
        db,
        member.member_id,
        ["2024-01", "2024-02", "2024-03", "2024-14", "2024-09"],
        admin.member_id,
        TODAY,
    )

    assert [r.month for r in result.created] == ["2024-01", "2024-02"]
    assert all(r.paid_status == "paid" for r in result.created)
    assert result.created[0].paid_date == date(2024, 1, 1)
    assert result.existing == ["2024-03"]
    assert [e.item for e in result.errors] == ["2024-14", "2024-09"]


def test_backfill_as_pending(db, member, admin):
    result = backfill(db, member.member_id, ["2024-04"], admin.member_id, TODAY, mark_as_paid=False)

    assert result.created[0].paid_status == "pending"
    assert result.created[0].recorded_by is None


def test_backfill_keeps_going_when_a_month_is_recorded_concurrently(db, session_factory, member, admin, monkeypatch):
    """
    Another writer records 2024-02 after the backfill checked for it. That
    month is reported as existing and the other months still land.
    """
    real_find = ContributionRepository.find_for_member_month
    raced = {"done": False}

    def racing_find(self, member_id, month):
        if self.db is db and month == "2024-02":
            if not raced["done"]:
                raced["done"] = True
                other = session_factory()
                try:
                    create_contribution(other, member.member_id, "2024-02", Decimal("2500"))
                finally:
                    other.close()
            return None
        return real_find(self, member_id, month)

    monkeypatch.setattr(ContributionRepository, "find_for_member_month", racing_find)

    result = backfill(db, member.member_id, ["2024-01", "2024-02", "2024-03"], admin.member_id, TODAY)

    assert [r.month for r in result.created] == ["2024-01", "2024-03"]
    assert result.existing == ["2024-02"]
    assert result.errors == []

    rows = {r.month: r for r in db.query(ContributionRecord).all()}
    assert sorted(rows) == ["2024-01", "2024-02", "2024-03"]
    assert rows["2024-02"].amount == Decimal("2500")
    assert rows["2024-02"].paid_status == "pending"


def test_failed_self_report_leaves_no_record(db, member, monkeypatch):
    def failing_check(paid_status):
        raise RuntimeError("storage unavailable")

    monkeypatch.setattr(contribution_module, "ensure_not_paid", failing_check)

    with pytest.raises(RuntimeError):
        self_report(db, member.member_id, "2024-07", TODAY)

    assert db.query(ContributionRecord).count() == 0

    monkeypatch.undo()
    reported = self_report(db, member.member_id, "2024-07", TODAY)
    assert reported.paid_status == "pending"
    assert db.query(ContributionRecord).count() == 1


def test_record_payment_for_paid_month_conflicts_without_changes(db, member, admin, make_contribution):
    paid = make_contribution(member.member_id, "2024-06")

    with pytest.raises(StateConflictError, match="already paid"):
        record_payment(db, member.member_id, "2024-06", admin.member_id, TODAY, amount=Decimal("9000"))

    db.refresh(paid)
    assert paid.amount == Decimal("2000")


def test_contribution_status(db, member, make_contribution):
    make_contribution(member.member_id, "2024-01")
    make_contribution(member.member_id, "2024-02")
    make_contribution(member.member_id, "2024-03", paid=False)
    make_contribution(member.member_id, "2023-12")

    status = contribution_status(db, member.member_id, TODAY)

    assert status.required_from == "2024-01"
    assert status.required_months == ["2024-01", "2024-02", "2024-03", "2024-04", "2024-05", "2024-06", "2024-07"]
    assert status.paid_months == ["2024-01", "2024-02"]
    assert status.pending_months == ["2024-03"]
    assert status.missing_months == ["2024-04", "2024-05", "2024-06", "2024-07"]
    assert status.total_paid == Decimal("4000.00")
    assert status.total_pending == Decimal("2000.00")
    assert status.is_current is False


def test_contribution_status_starts_at_community_opening(db, make_member):
    founder = make_member("Founding Member", join_date=date(2023, 1, 1))

    status = contribution_status(db, founder.member_id, date(2023, 11, 2))

    assert status.required_months == ["2023-09", "2023-10", "2023-11"]


def test_list_contributions_filters(db, member, make_contribution):
    make_contribution(member.member_id, "2024-01")
    make_contribution(member.member_id, "2024-02", paid=False)
    make_contribution(member.member_id, "2023-12")

    items, total = list_contributions(db, member_id=member.member_id, year=2024)
    assert total == 2
    assert [r.month for r in items] == ["2024-02", "2024-01"]

    items, total = list_contributions(db, paid_status="pending")
    assert total == 1
