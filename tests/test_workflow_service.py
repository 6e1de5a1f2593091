"""Tests for the payout workflow service.

Covers stage transitions, atomicity of the stage + audit write,
per-payout serialization and the quarterly report side effect of paying.
"""

import asyncio
from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from royalty_engine.calculators.types import PayoutCalculationRequest
from royalty_engine.config import EngineConfig, WorkflowConfig
from royalty_engine.domain import ReportingPeriod
from royalty_engine.events.types import (
    PayoutStatusChanged,
    PayoutUpdated,
    QuarterlyReportCreated,
)
from royalty_engine.exceptions import (
    AuthenticationError,
    ConflictingOperationError,
    ExternalServiceError,
    InvalidInputError,
    InvalidTransitionError,
    ResolutionFailureError,
)
from royalty_engine.services.workflow_service import PayoutWorkflowService
from tests.factories import (
    Q1_2024,
    SuspendingRepository,
    approved_payout,
    make_row,
    seed_catalog,
)

pytestmark = pytest.mark.asyncio


@pytest.fixture
def workflow(repo, emitter, engine_config, no_sleep) -> PayoutWorkflowService:
    return PayoutWorkflowService(repo, emitter, config=engine_config, sleep=no_sleep)


@pytest.fixture
def approved(repo, catalog):
    payout = approved_payout(catalog)
    repo.add(payout)
    return payout


class TestCreatePayout:
    async def test_creates_draft_from_calculation(self, workflow, repo, catalog, recorder):
        repo.add(make_row(catalog.user_id, catalog.payee.payee_id, "10000"))

        payout = await workflow.create_payout(
            PayoutCalculationRequest(
                user_id=catalog.user_id,
                period=Q1_2024,
                payee_ids=[catalog.payee.payee_id],
                agreement_id=catalog.agreement.agreement_id,
            ),
            catalog.payee.payee_id,
            "Q1 2024",
        )

        assert payout.workflow_stage == "draft"
        assert payout.status == "pending"
        # 10000 - 15% commission, then the full 2000 advance
        assert payout.amount_due == Decimal("6500.00")
        assert repo.payouts[payout.payout_id] == payout
        assert [e.payout_id for e in recorder.of_type(PayoutUpdated)] == [payout.payout_id]

    async def test_advance_recouped_in_a_paid_quarter_is_not_recouped_again(
        self, workflow, repo, catalog
    ):
        payee_id = catalog.payee.payee_id
        repo.add(
            make_row(catalog.user_id, payee_id, "1500"),
            make_row(catalog.user_id, payee_id, "4000", day=date(2024, 5, 15)),
        )

        async def create(period, label):
            return await workflow.create_payout(
                PayoutCalculationRequest(
                    user_id=catalog.user_id,
                    period=period,
                    payee_ids=[payee_id],
                    agreement_id=catalog.agreement.agreement_id,
                ),
                payee_id,
                label,
            )

        q1 = await create(Q1_2024, "Q1 2024")
        assert q1.advance_recoupment == Decimal("1275.00")
        assert q1.amount_due == Decimal("0.00")
        for stage in ("pending_review", "approved", "paid"):
            await workflow.transition(catalog.user_id, q1.payout_id, stage)

        q2 = await create(ReportingPeriod(date(2024, 4, 1), date(2024, 6, 30)), "Q2 2024")

        # 2000 advance less the 1275 recouped in Q1
        assert q2.advance_recoupment == Decimal("725.00")
        assert q2.amount_due == Decimal("2675.00")

    async def test_bad_period_label_rejected_before_writing(self, workflow, repo, catalog):
        with pytest.raises(InvalidInputError):
            await workflow.create_payout(
                PayoutCalculationRequest(user_id=catalog.user_id, period=Q1_2024),
                catalog.payee.payee_id,
                "first quarter",
            )
        assert repo.payouts == {}


class TestTransitions:
    async def test_full_lifecycle(self, workflow, repo, catalog, recorder):
        draft = replace(approved_payout(catalog), workflow_stage="draft")
        repo.add(draft)

        for stage in ("pending_review", "approved", "paid"):
            payout = await workflow.transition(catalog.user_id, draft.payout_id, stage)

        assert payout.workflow_stage == "paid"
        assert payout.status == "paid"
        assert payout.payment_date is not None
        assert payout.quarterly_report_id is not None

        history = await workflow.history(catalog.user_id, draft.payout_id)
        assert [e.to_stage for e in history] == ["paid", "approved", "pending_review"]

        changes = recorder.of_type(PayoutStatusChanged)
        assert [(c.from_stage, c.to_stage) for c in changes] == [
            ("draft", "pending_review"),
            ("pending_review", "approved"),
            ("approved", "paid"),
        ]
        assert len(recorder.of_type(QuarterlyReportCreated)) == 1

    async def test_paid_creates_quarterly_report(self, workflow, repo, catalog, approved):
        await workflow.transition(catalog.user_id, approved.payout_id, "paid")

        (report,) = repo.quarterly_reports.values()
        assert (report.year, report.quarter) == (2024, 1)
        assert report.payee_id == catalog.payee.payee_id
        assert report.royalties_amount == Decimal("8500.00")
        assert report.expenses_amount == Decimal("500.00")
        assert report.payments_amount == Decimal("6000.00")
        assert report.opening_balance == Decimal("0")
        assert report.closing_balance == Decimal("2000.00")

    async def test_illegal_edge_writes_nothing(self, workflow, repo, catalog, recorder):
        draft = replace(approved_payout(catalog), workflow_stage="draft")
        repo.add(draft)

        with pytest.raises(InvalidTransitionError):
            await workflow.transition(catalog.user_id, draft.payout_id, "paid")

        assert repo.payouts[draft.payout_id].workflow_stage == "draft"
        assert repo.audit_entries == []
        assert recorder.events == []

    async def test_terminal_stage_is_final(self, workflow, repo, catalog, approved):
        await workflow.transition(catalog.user_id, approved.payout_id, "cancelled")

        with pytest.raises(InvalidTransitionError) as exc_info:
            await workflow.transition(catalog.user_id, approved.payout_id, "approved")
        assert "terminal" in str(exc_info.value)

    async def test_payment_failed_requires_reason(self, workflow, repo, catalog, approved):
        with pytest.raises(InvalidTransitionError):
            await workflow.transition(catalog.user_id, approved.payout_id, "payment_failed")

        failed = await workflow.transition(
            catalog.user_id, approved.payout_id, "payment_failed", reason="Account closed"
        )
        assert failed.failure_reason == "Account closed"
        assert failed.status == "pending"

        retried = await workflow.transition(catalog.user_id, approved.payout_id, "approved")
        assert retried.failure_reason is None

    async def test_audit_entry_records_actor_and_metadata(self, workflow, catalog, approved):
        actor = uuid4()

        await workflow.transition(
            catalog.user_id,
            approved.payout_id,
            "processing",
            reason="Sent to bank",
            metadata={"batch": "2024-04-01"},
            actor_id=actor,
        )

        (entry,) = await workflow.history(catalog.user_id, approved.payout_id)
        assert entry.from_stage == "approved"
        assert entry.to_stage == "processing"
        assert entry.reason == "Sent to bank"
        assert entry.metadata == {"batch": "2024-04-01"}
        assert entry.actor_id == actor

    async def test_unknown_payout(self, workflow, catalog):
        with pytest.raises(ResolutionFailureError):
            await workflow.transition(catalog.user_id, uuid4(), "approved")


class TestAtomicity:
    async def test_audit_failure_rolls_back_stage(self, workflow, repo, catalog, approved, recorder):
        repo.inject_failure("insert_workflow_audit_entry", ExternalServiceError("write failed"))

        with pytest.raises(ExternalServiceError):
            await workflow.transition(catalog.user_id, approved.payout_id, "paid")

        stored = repo.payouts[approved.payout_id]
        assert stored.workflow_stage == "approved"
        assert stored.status == "pending"
        assert repo.audit_entries == []
        assert repo.quarterly_reports == {}
        assert recorder.events == []


class TestSerialization:
    async def test_concurrent_paid_rejected(self, emitter, engine_config, no_sleep, user_id):
        repo = SuspendingRepository()
        catalog = seed_catalog(repo, user_id)
        payout = approved_payout(catalog)
        repo.add(payout)
        workflow = PayoutWorkflowService(repo, emitter, config=engine_config, sleep=no_sleep)

        results = await asyncio.gather(
            workflow.transition(user_id, payout.payout_id, "paid"),
            workflow.transition(user_id, payout.payout_id, "paid"),
            return_exceptions=True,
        )

        assert results[0].workflow_stage == "paid"
        assert isinstance(results[1], ConflictingOperationError)
        assert len(repo.quarterly_reports) == 1
        assert len(repo.audit_entries) == 1

    async def test_concurrent_paid_queued(self, emitter, no_sleep, user_id):
        repo = SuspendingRepository()
        catalog = seed_catalog(repo, user_id)
        payout = approved_payout(catalog)
        repo.add(payout)
        config = EngineConfig(workflow=WorkflowConfig(conflict_policy="queue"))
        workflow = PayoutWorkflowService(repo, emitter, config=config, sleep=no_sleep)

        results = await asyncio.gather(
            workflow.transition(user_id, payout.payout_id, "paid"),
            workflow.transition(user_id, payout.payout_id, "paid"),
            return_exceptions=True,
        )

        assert results[0].workflow_stage == "paid"
        # The queued call sees the committed stage
        assert isinstance(results[1], InvalidTransitionError)
        assert len(repo.quarterly_reports) == 1

    async def test_different_payouts_run_concurrently(self, emitter, engine_config, no_sleep, user_id):
        repo = SuspendingRepository()
        catalog = seed_catalog(repo, user_id)
        first = approved_payout(catalog)
        second = approved_payout(catalog, period="Q2 2024")
        repo.add(first, second)
        workflow = PayoutWorkflowService(repo, emitter, config=engine_config, sleep=no_sleep)

        results = await asyncio.gather(
            workflow.transition(user_id, first.payout_id, "processing"),
            workflow.transition(user_id, second.payout_id, "processing"),
        )

        assert [p.workflow_stage for p in results] == ["processing", "processing"]


class TestSideEffects:
    async def test_report_failure_keeps_payout_paid(self, workflow, repo, catalog, approved):
        repo.inject_failure("upsert_quarterly_report", ExternalServiceError("disk full"))

        payout = await workflow.transition(catalog.user_id, approved.payout_id, "paid")

        assert payout.workflow_stage == "paid"
        assert repo.payouts[approved.payout_id].status == "paid"
        assert repo.quarterly_reports == {}
        (pending,) = workflow.pending_side_effects
        assert pending.payout_id == approved.payout_id
        assert pending.effect == "quarterly_report"
        assert "disk full" in pending.error

    async def test_retry_creates_missing_report(self, workflow, repo, catalog, approved):
        repo.inject_failure("upsert_quarterly_report", ExternalServiceError("disk full"))
        await workflow.transition(catalog.user_id, approved.payout_id, "paid")

        results = await workflow.retry_pending_side_effects()

        assert results == {approved.payout_id: True}
        assert workflow.pending_side_effects == []
        (report,) = repo.quarterly_reports.values()
        assert repo.payouts[approved.payout_id].quarterly_report_id == report.report_id

    async def test_retry_is_scoped_to_the_requesting_user(
        self, workflow, repo, catalog, approved
    ):
        other = seed_catalog(repo, uuid4())
        foreign = approved_payout(other)
        repo.add(foreign)
        repo.inject_failure("upsert_quarterly_report", ExternalServiceError("disk full"), times=2)
        await workflow.transition(catalog.user_id, approved.payout_id, "paid")
        await workflow.transition(other.user_id, foreign.payout_id, "paid")

        results = await workflow.retry_pending_side_effects(catalog.user_id)

        assert results == {approved.payout_id: True}
        assert workflow.pending_for(catalog.user_id) == []
        assert [p.payout_id for p in workflow.pending_for(other.user_id)] == [foreign.payout_id]

    async def test_report_reused_for_same_quarter(self, workflow, repo, catalog, approved):
        sibling = approved_payout(catalog)
        repo.add(sibling)

        await workflow.transition(catalog.user_id, approved.payout_id, "paid")
        await workflow.transition(catalog.user_id, sibling.payout_id, "paid")

        assert len(repo.quarterly_reports) == 1
        assert (
            repo.payouts[approved.payout_id].quarterly_report_id
            == repo.payouts[sibling.payout_id].quarterly_report_id
        )


class TestFetchRetry:
    async def test_transient_failures_retried(self, workflow, repo, catalog, approved, no_sleep):
        repo.inject_failure("get_payout", ExternalServiceError("timeout"), times=2)

        payout = await workflow.get_payout(catalog.user_id, approved.payout_id)

        assert payout == approved
        assert no_sleep.delays == [0.01, 0.02]

    async def test_authentication_error_not_retried(self, workflow, repo, catalog, approved, no_sleep):
        repo.inject_failure("get_payout", AuthenticationError("token expired"))

        with pytest.raises(AuthenticationError):
            await workflow.get_payout(catalog.user_id, approved.payout_id)
        assert no_sleep.delays == []


class TestRecalculate:
    async def test_recalculate_draft(self, workflow, repo, catalog):
        repo.add(make_row(catalog.user_id, catalog.payee.payee_id, "1000"))
        draft = replace(approved_payout(catalog), workflow_stage="draft")
        repo.add(draft)

        updated = await workflow.recalculate(catalog.user_id, draft.payout_id)

        assert updated.gross_royalties == Decimal("1000.00")
        assert repo.payouts[draft.payout_id].gross_royalties == Decimal("1000.00")

    async def test_recalculate_processing_rejected(self, workflow, repo, catalog):
        processing = approved_payout(catalog, workflow_stage="processing")
        repo.add(processing)

        with pytest.raises(InvalidTransitionError):
            await workflow.recalculate(catalog.user_id, processing.payout_id)
