"""API endpoint integration tests.

Tests the FastAPI endpoints for allocations, payouts, batches and
quarterly reports.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from httpx import AsyncClient

from royalty_engine.domain import Expense, ExpenseFlags, ExpenseStatus
from royalty_engine.exceptions import ExternalServiceError
from tests.factories import approved_payout, make_row, make_work, seed_catalog

pytestmark = pytest.mark.asyncio


def headers(user_id) -> dict[str, str]:
    return {"X-User-ID": str(user_id)}


def q1_request(catalog, **fields) -> dict:
    return {
        "period_start": "2024-01-01",
        "period_end": "2024-03-31",
        "payee_ids": [str(catalog.payee.payee_id)],
        "agreement_id": str(catalog.agreement.agreement_id),
        **fields,
    }


@pytest.fixture
def seeded(repo, catalog):
    """Q1 rows totalling 10000 and a 500 recoupable expense."""
    payee_id = catalog.payee.payee_id
    repo.add(
        make_row(catalog.user_id, payee_id, "6000"),
        make_row(catalog.user_id, payee_id, "4000", day=date(2024, 3, 31)),
        Expense(
            expense_id=uuid4(),
            user_id=catalog.user_id,
            description="Demo recording",
            amount=Decimal("500"),
            flags=ExpenseFlags(recoupable=True),
            status=ExpenseStatus.APPROVED,
            payee_id=payee_id,
            date_incurred=date(2024, 2, 1),
        ),
    )
    return catalog


class TestHealthEndpoints:
    """Test health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "not_configured"
        assert data["pending_side_effects"] == 0

    async def test_readiness_check(self, client: AsyncClient):
        response = await client.get("/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    async def test_liveness_check(self, client: AsyncClient):
        response = await client.get("/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"


class TestUserHeader:
    async def test_missing_user_header(self, client: AsyncClient):
        response = await client.get(f"/api/v1/payouts/{uuid4()}")
        assert response.status_code == 400
        assert "X-User-ID" in response.json()["detail"]

    async def test_malformed_user_header(self, client: AsyncClient):
        response = await client.get(
            f"/api/v1/payouts/{uuid4()}", headers={"X-User-ID": "not-a-uuid"}
        )
        assert response.status_code == 400


class TestAllocations:
    async def test_prorate_fee(self, client: AsyncClient, repo, user_id):
        work = make_work("Song", ("W1", "50", True), ("W2", "50", False), user_id=user_id)
        repo.add(work)

        response = await client.post(
            "/api/v1/allocations/prorate",
            headers=headers(user_id),
            json={"fee": "1000", "work_ids": [str(work.work_id)]},
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert Decimal(data["total_allocated"]) == Decimal("1000")
        assert data["is_balanced"] is True
        (allocation,) = data["allocations"]
        assert Decimal(allocation["controlled_amount"]) == Decimal("500")
        assert [w["writer_name"] for w in allocation["writers"]] == ["W1"]

    async def test_prorate_license_merges_writers(self, client: AsyncClient, repo, user_id):
        work = make_work("Song", ("W1", "100", True), user_id=user_id)
        repo.add(work)

        response = await client.post(
            "/api/v1/allocations/prorate-license",
            headers=headers(user_id),
            json={
                "publishing_fee": "600",
                "master_fee": "400",
                "work_ids": [str(work.work_id)],
            },
        )

        assert response.status_code == 200, response.text
        (writer,) = response.json()["payee_breakdown"]
        assert Decimal(writer["total_allocation"]) == Decimal("1000")
        assert Decimal(writer["publishing_allocation"]) == Decimal("600")
        assert Decimal(writer["master_allocation"]) == Decimal("400")

    async def test_unknown_work_is_not_found(self, client: AsyncClient, user_id):
        response = await client.post(
            "/api/v1/allocations/prorate",
            headers=headers(user_id),
            json={"fee": "1000", "work_ids": [str(uuid4())]},
        )

        assert response.status_code == 404
        assert response.json()["code"] == "RESOLUTION_FAILURE"

    async def test_negative_fee_rejected(self, client: AsyncClient, user_id):
        response = await client.post(
            "/api/v1/allocations/prorate",
            headers=headers(user_id),
            json={"fee": "-1", "work_ids": []},
        )
        assert response.status_code == 422


class TestPayouts:
    async def test_calculate_does_not_store(self, client: AsyncClient, repo, seeded):
        response = await client.post(
            "/api/v1/payouts/calculate",
            headers=headers(seeded.user_id),
            json=q1_request(seeded),
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["calculation_method"] == "agreement_based"
        assert Decimal(data["gross_royalties"]) == Decimal("10000")
        assert Decimal(data["amount_due"]) == Decimal("6000")
        assert repo.payouts == {}

    async def test_create_payout(self, client: AsyncClient, repo, seeded):
        response = await client.post(
            "/api/v1/payouts",
            headers=headers(seeded.user_id),
            json=q1_request(
                seeded, payee_id=str(seeded.payee.payee_id), period_label="Q1 2024"
            ),
        )

        assert response.status_code == 201, response.text
        data = response.json()
        assert data["workflow_stage"] == "draft"
        assert data["period"] == "Q1 2024"
        assert data["payout_id"] in {str(k) for k in repo.payouts}

    async def test_create_with_bad_period_label(self, client: AsyncClient, repo, seeded):
        response = await client.post(
            "/api/v1/payouts",
            headers=headers(seeded.user_id),
            json=q1_request(
                seeded, payee_id=str(seeded.payee.payee_id), period_label="sometime"
            ),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_INPUT"
        assert repo.payouts == {}

    async def test_unknown_payee_name(self, client: AsyncClient, seeded):
        response = await client.post(
            "/api/v1/payouts/calculate",
            headers=headers(seeded.user_id),
            json=q1_request(seeded, payee_ids=[], payee_name="Nobody"),
        )
        assert response.status_code == 404

    async def test_get_unknown_payout(self, client: AsyncClient, user_id):
        response = await client.get(f"/api/v1/payouts/{uuid4()}", headers=headers(user_id))

        assert response.status_code == 404
        assert response.json()["code"] == "RESOLUTION_FAILURE"

    async def test_payouts_scoped_to_user(self, client: AsyncClient, repo, catalog):
        payout = approved_payout(catalog)
        repo.add(payout)

        response = await client.get(
            f"/api/v1/payouts/{payout.payout_id}", headers=headers(uuid4())
        )
        assert response.status_code == 404


class TestWorkflow:
    async def test_transition_to_paid(self, client: AsyncClient, repo, catalog):
        payout = approved_payout(catalog)
        repo.add(payout)

        response = await client.post(
            f"/api/v1/payouts/{payout.payout_id}/transition",
            headers=headers(catalog.user_id),
            json={"to_stage": "paid", "reason": "Wired", "metadata": {"ref": "TX-1"}},
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["workflow_stage"] == "paid"
        assert data["status"] == "paid"
        assert data["quarterly_report_id"] is not None

        history = await client.get(
            f"/api/v1/payouts/{payout.payout_id}/history", headers=headers(catalog.user_id)
        )
        assert history.status_code == 200
        (entry,) = history.json()["items"]
        assert (entry["from_stage"], entry["to_stage"]) == ("approved", "paid")
        assert entry["metadata"] == {"ref": "TX-1"}

    async def test_invalid_transition_is_conflict(self, client: AsyncClient, repo, catalog):
        payout = approved_payout(catalog, workflow_stage="draft", status="draft")
        repo.add(payout)

        response = await client.post(
            f"/api/v1/payouts/{payout.payout_id}/transition",
            headers=headers(catalog.user_id),
            json={"to_stage": "paid"},
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "INVALID_TRANSITION"
        assert body["context"]["from_stage"] == "draft"
        assert repo.payouts[payout.payout_id].workflow_stage == "draft"

    async def test_recalculate_terminal_payout_is_conflict(
        self, client: AsyncClient, repo, catalog
    ):
        payout = approved_payout(catalog, workflow_stage="paid", status="paid")
        repo.add(payout)

        response = await client.post(
            f"/api/v1/payouts/{payout.payout_id}/recalculate",
            headers=headers(catalog.user_id),
        )
        assert response.status_code == 409

    async def test_retry_side_effects_with_nothing_pending(
        self, client: AsyncClient, user_id
    ):
        response = await client.post(
            "/api/v1/payouts/pending-side-effects/retry", headers=headers(user_id)
        )

        assert response.status_code == 200
        assert response.json() == {"retried": {}, "still_pending": 0}

    async def test_retry_side_effects_only_touches_own_payouts(
        self, client: AsyncClient, repo, catalog
    ):
        other = seed_catalog(repo, uuid4())
        own = approved_payout(catalog)
        foreign = approved_payout(other)
        repo.add(own, foreign)
        repo.inject_failure("upsert_quarterly_report", ExternalServiceError("disk full"), times=2)
        for payout in (own, foreign):
            response = await client.post(
                f"/api/v1/payouts/{payout.payout_id}/transition",
                headers=headers(payout.user_id),
                json={"to_stage": "paid"},
            )
            assert response.status_code == 200

        response = await client.post(
            "/api/v1/payouts/pending-side-effects/retry", headers=headers(catalog.user_id)
        )

        assert response.json() == {"retried": {str(own.payout_id): True}, "still_pending": 0}


class TestBatches:
    async def test_create_run_and_fetch(self, client: AsyncClient, repo, catalog):
        payouts = [approved_payout(catalog, period=f"Q{q} 2024") for q in (1, 2)]
        repo.add(*payouts)

        created = await client.post(
            "/api/v1/batches",
            headers=headers(catalog.user_id),
            json={
                "operation_type": "transition",
                "target_ids": [str(p.payout_id) for p in payouts],
                "config": {"to_stage": "processing"},
            },
        )
        assert created.status_code == 201, created.text
        assert created.json()["status"] == "pending"
        batch_id = created.json()["batch_id"]

        run = await client.post(
            f"/api/v1/batches/{batch_id}/run", headers=headers(catalog.user_id)
        )
        assert run.status_code == 200
        assert run.json()["status"] == "completed"
        assert run.json()["completed_count"] == 2

        fetched = await client.get(f"/api/v1/batches/{batch_id}", headers=headers(catalog.user_id))
        assert fetched.json()["status"] == "completed"
        assert {o["status"] for o in fetched.json()["outcomes"]} == {"completed"}

    async def test_failed_target_reported(self, client: AsyncClient, catalog):
        missing = uuid4()
        created = await client.post(
            "/api/v1/batches",
            headers=headers(catalog.user_id),
            json={
                "operation_type": "transition",
                "target_ids": [str(missing)],
                "config": {"to_stage": "processing"},
            },
        )
        batch_id = created.json()["batch_id"]

        run = await client.post(
            f"/api/v1/batches/{batch_id}/run", headers=headers(catalog.user_id)
        )

        data = run.json()
        assert data["status"] == "failed"
        assert data["outcomes"][0]["error_code"] == "RESOLUTION_FAILURE"

    async def test_invalid_operation_rejected(self, client: AsyncClient, user_id):
        response = await client.post(
            "/api/v1/batches",
            headers=headers(user_id),
            json={"operation_type": "delete", "target_ids": [str(uuid4())]},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_INPUT"

    async def test_unknown_batch(self, client: AsyncClient, user_id):
        response = await client.get(f"/api/v1/batches/{uuid4()}", headers=headers(user_id))
        assert response.status_code == 404


class TestReports:
    async def _pay(self, client: AsyncClient, repo, catalog) -> None:
        payout = approved_payout(catalog)
        repo.add(payout)
        response = await client.post(
            f"/api/v1/payouts/{payout.payout_id}/transition",
            headers=headers(catalog.user_id),
            json={"to_stage": "paid"},
        )
        assert response.status_code == 200, response.text

    async def test_list_reports(self, client: AsyncClient, repo, catalog):
        await self._pay(client, repo, catalog)

        response = await client.get(
            "/api/v1/reports",
            headers=headers(catalog.user_id),
            params={"payee_id": str(catalog.payee.payee_id)},
        )

        assert response.status_code == 200
        (report,) = response.json()["items"]
        assert report["period_label"] == "Q1 2024"
        assert Decimal(report["closing_balance"]) == Decimal("2000")

    async def test_export_csv(self, client: AsyncClient, repo, catalog):
        await self._pay(client, repo, catalog)

        response = await client.get("/api/v1/reports/export", headers=headers(catalog.user_id))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.splitlines()
        assert lines[0] == "period,opening_balance,royalties,expenses,payments,closing_balance"
        assert lines[1] == "Q1 2024,0.00,8500.00,500.00,6000.00,2000.00"

    async def test_trailing_reports(self, client: AsyncClient, catalog):
        response = await client.post(
            "/api/v1/reports/trailing",
            headers=headers(catalog.user_id),
            json={"payee_id": str(catalog.payee.payee_id), "as_of": "2024-06-30", "count": 4},
        )

        assert response.status_code == 200, response.text
        labels = [r["period_label"] for r in response.json()["items"]]
        assert labels == ["Q3 2023", "Q4 2023", "Q1 2024", "Q2 2024"]
