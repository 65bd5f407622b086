"""Integration tests for API endpoints"""

import pytest
from fastapi.testclient import TestClient
from community_fund.domain.models import LoanStatus


@pytest.fixture
def disbursed_loan(borrower, make_loan):
    return make_loan(borrower.member_id, LoanStatus.DISBURSED)


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "community_loan_transitions_total" in response.text
    assert "community_repayments_total" in response.text


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_create_and_list_members(client: TestClient, admin_headers):
    response = client.post(
        "/v1/members",
        json={"name": "Wanjiru Kamau", "phone": "0722000000", "join_date": "2024-02-01"},
        headers=admin_headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["member_code"] == "CSL0002"
    assert body["data"]["can_login"] is False

    response = client.get("/v1/members")
    assert [m["name"] for m in response.json()["data"]] == ["Fund Treasurer", "Wanjiru Kamau"]


def test_member_credentials_come_in_pairs(client: TestClient):
    response = client.post("/v1/members", json={"name": "Half", "phone": "0733", "email": "half@community.test"})

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error_kind": "ValidationError",
        "message": "Email and password hash must be provided together",
    }


def test_request_loan_defaults_borrower_to_actor(client: TestClient, borrower):
    response = client.post(
        "/v1/loans",
        json={"requested_amount": 10000, "purpose": "Greenhouse", "expected_repayment_date": "2025-07-01"},
        headers={"X-Actor-ID": borrower.member_id},
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["borrower_id"] == borrower.member_id
    assert data["status"] == "pending"
    assert data["total_amount_due"] == 0
    assert data["interest_rate"] == 16


def test_missing_actor_header_is_a_validation_error(client: TestClient):
    response = client.post("/v1/admin/recalculate-interest")

    assert response.status_code == 400
    assert response.json()["error_kind"] == "ValidationError"


def test_malformed_actor_header(client: TestClient):
    response = client.post("/v1/admin/recalculate-interest", headers={"X-Actor-ID": "nobody"})

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid actor ID format"


def test_get_loan_shows_interest_accrued_today(client: TestClient, disbursed_loan):
    response = client.get(f"/v1/loans/{disbursed_loan.id}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total_amount_due"] == 10800
    assert data["remaining_balance"] == 10800
    assert data["total_interest"] == 800
    assert data["months_elapsed"] == 6


def test_unknown_loan_is_not_found(client: TestClient):
    response = client.get("/v1/loans/5a0e8f53-7a51-4f39-9d3c-6c1e3f2b9a10")

    assert response.status_code == 404
    assert response.json()["error_kind"] == "NotFoundError"
    assert response.json()["message"] == "Loan not found"


def test_decision_approve_then_disburse(client: TestClient, borrower, make_loan, admin_headers):
    loan = make_loan(borrower.member_id)

    response = client.put(
        f"/v1/loans/{loan.id}/decision",
        json={"decision": "approve", "approved_amount": 8000},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "approved"
    assert response.json()["data"]["approval_date"] == "2024-07-15"

    response = client.post(f"/v1/loans/{loan.id}/disburse", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "disbursed"
    assert response.json()["data"]["disbursement_date"] == "2024-07-15"


def test_illegal_transition_is_a_conflict(client: TestClient, disbursed_loan, admin_headers):
    response = client.put(
        f"/v1/loans/{disbursed_loan.id}/decision",
        json={"decision": "reject", "rejection_reason": "Changed our minds"},
        headers=admin_headers,
    )

    assert response.status_code == 409
    assert response.json()["error_kind"] == "StateConflictError"

    response = client.get(f"/v1/loans/{disbursed_loan.id}")
    assert response.json()["data"]["status"] == "disbursed"


def test_delete_disbursed_loan_conflicts(client: TestClient, disbursed_loan, admin_headers):
    response = client.delete(f"/v1/loans/{disbursed_loan.id}", headers=admin_headers)
    assert response.status_code == 409


def test_record_combined_repayment(client: TestClient, disbursed_loan, admin_headers):
    response = client.post(
        f"/v1/loans/{disbursed_loan.id}/repayments",
        json={
            "amount": 3000,
            "payment_type": "combined",
            "principal_amount": 2200,
            "interest_amount": 800,
            "payment_method": "bank_transfer",
        },
        headers=admin_headers,
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["repayment"]["receipt_number"] == "RPT00000001"
    assert data["repayment"]["remaining_balance"] == 8600
    assert data["loan"]["amount_paid"] == 2200
    assert data["loan"]["remaining_balance"] == 8600
    assert data["loan"]["repayment_ids"] == [data["repayment"]["id"]]

    response = client.get(f"/v1/loans/{disbursed_loan.id}/repayments")
    assert len(response.json()["data"]) == 1


def test_over_allocated_repayment_rejected(client: TestClient, disbursed_loan, admin_headers):
    response = client.post(
        f"/v1/loans/{disbursed_loan.id}/repayments",
        json={"amount": 20000, "payment_type": "principal"},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Principal payment cannot exceed remaining loan balance"


def test_unknown_payment_type_rejected(client: TestClient, disbursed_loan, admin_headers):
    response = client.post(
        f"/v1/loans/{disbursed_loan.id}/repayments",
        json={"amount": 100, "payment_type": "tip"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["error_kind"] == "ValidationError"


def test_contribution_upsert_is_idempotent(client: TestClient, member, admin_headers):
    body = {"member_id": member.member_id, "month": "2024-07"}

    first = client.put("/v1/contributions", json=body, headers=admin_headers)
    second = client.put("/v1/contributions", json={**body, "amount": 9000}, headers=admin_headers)

    assert first.json()["data"]["created"] is True
    assert second.json()["data"]["created"] is False
    assert second.json()["data"]["contribution"]["amount"] == 2000


def test_confirm_twice_conflicts(client: TestClient, member, admin_headers):
    created = client.put("/v1/contributions", json={"member_id": member.member_id, "month": "2024-07"}, headers=admin_headers)
    contribution_id = created.json()["data"]["contribution"]["id"]

    first = client.post(f"/v1/contributions/{contribution_id}/confirm", headers=admin_headers)
    second = client.post(f"/v1/contributions/{contribution_id}/confirm", headers=admin_headers)

    assert first.status_code == 200
    assert first.json()["data"]["paid_status"] == "paid"
    assert second.status_code == 409
    assert second.json()["message"] == "Contribution already paid"


def test_monthly_batch_and_listing(client: TestClient, make_member, admin_headers):
    make_member("Amina Njeri")
    make_member("Otieno Were")

    response = client.post("/v1/contributions/monthly", json={"year": 2024, "month": 7}, headers=admin_headers)
    # the treasurer is an active member too
    assert len(response.json()["data"]["created"]) == 3

    response = client.get("/v1/contributions", params={"month": "2024-07"})
    page = response.json()["data"]
    assert page["total"] == 3
    assert page["pages"] == 1


def test_contribution_status_endpoint(client: TestClient, borrower):
    response = client.get(f"/v1/members/{borrower.member_id}/contribution-status")

    data = response.json()["data"]
    assert data["paid_months"] == ["2024-01"]
    assert data["is_current"] is False


def test_historical_interest_endpoints(client: TestClient, admin_headers):
    response = client.post(
        "/v1/historical-interest",
        json={"amount": 450, "interest_date": "2024-03-01", "description": "Pre-system interest", "source": "penalty"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    record_id = response.json()["data"]["id"]

    response = client.put(f"/v1/historical-interest/{record_id}", json={"amount": 500}, headers=admin_headers)
    assert response.json()["data"]["amount"] == 500
    assert response.json()["data"]["description"] == "Pre-system interest"

    response = client.get("/v1/historical-interest/summary", params={"year": 2024})
    summary = response.json()["data"]
    assert summary["total_historical_interest"] == 500
    assert summary["year_breakdown"]["monthly_breakdown"][0]["label"] == "March 2024"

    response = client.get("/v1/historical-interest", params={"year": 2024, "month": 3})
    assert response.json()["data"]["summary"]["record_count"] == 1

    response = client.delete(f"/v1/historical-interest/{record_id}", headers=admin_headers)
    assert response.status_code == 200
    assert client.get(f"/v1/historical-interest/{record_id}").status_code == 404


def test_recalculate_interest_endpoint(client: TestClient, disbursed_loan, admin_headers):
    response = client.post("/v1/admin/recalculate-interest", headers=admin_headers)

    data = response.json()["data"]
    assert data["updated_count"] == 1
    assert data["results"][0]["delta"] == 800
    assert data["failures"] == []


def test_community_finances_endpoint(client: TestClient, disbursed_loan):
    response = client.get("/v1/community-finances", params={"as_of": "2024-06-30"})

    data = response.json()["data"]
    assert data["as_of"] == "2024-06-30"
    assert data["total_contributions"] == 2000
    assert data["active_loans_principal"] == 10000
    assert data["available_liquid_funds"] == -8000
    assert data["monthly_history"][-1]["month"] == "2024-06"
    assert data["loan_summaries"][0]["remaining_balance"] == 10733.33


def test_member_summary(client: TestClient, disbursed_loan, borrower):
    response = client.get(f"/v1/members/{borrower.member_id}/summary")

    data = response.json()["data"]
    assert data["total_savings"] == 2000
    assert data["contribution_count"] == 1
    assert data["current_loan"]["total_amount_due"] == 10800
    assert len(data["loan_history"]) == 1


def test_admin_overview_endpoint(client: TestClient, disbursed_loan, admin_headers):
    response = client.get("/v1/admin/overview", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["current_month"] == "2024-07"
    assert data["total_members"] == 2
    assert data["total_savings"] == 2000
    assert data["loans_by_status"]["disbursed"] == {"count": 1, "total_amount": 10000}
    assert data["contributions_by_status"]["paid"]["count"] == 0
    assert data["outstanding_balance"] == 10800
    assert data["loan_to_savings_ratio"] == 500


def test_catch_up_endpoint(client: TestClient, admin_headers):
    response = client.get("/v1/admin/catch-up", params={"join_date": "2024-07-01"}, headers=admin_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["months_missed"] == 10
    assert data["grand_total"] == 23200
    assert data["installments"] == 24
    assert data["installment_amount"] == 966.67
    assert data["years"][0]["interest_period_months"] == 12


def test_catch_up_rejects_founding_members(client: TestClient, admin_headers):
    response = client.get("/v1/admin/catch-up", params={"join_date": "2023-09-01"}, headers=admin_headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Joining date must be after community start date"
