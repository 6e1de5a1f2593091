"""Royalty engine services."""

from royalty_engine.services.state_machine import PayoutStage, PayoutStateMachine, PayoutStatus
from royalty_engine.services.ownership import OwnershipLedger, PayeeChain
from royalty_engine.services.quarterly_reports import QuarterlyReportService, export_csv
from royalty_engine.services.workflow_service import PayoutWorkflowService, PendingSideEffect
from royalty_engine.services.batch_service import BatchService

__all__ = [
    "PayoutStage",
    "PayoutStateMachine",
    "PayoutStatus",
    "OwnershipLedger",
    "PayeeChain",
    "QuarterlyReportService",
    "export_csv",
    "PayoutWorkflowService",
    "PendingSideEffect",
    "BatchService",
]
