"""ORM models for the royalty engine."""

from royalty_engine.models.base import Base, TimestampMixin
from royalty_engine.models.catalog import (
    AgreementModel,
    OriginalPublisherModel,
    PayeeModel,
    WorkModel,
    WorkPublisherModel,
    WorkWriterModel,
    WriterModel,
)
from royalty_engine.models.payout import (
    BatchOperationModel,
    PayoutModel,
    QuarterlyBalanceReportModel,
    WorkflowAuditEntryModel,
)
from royalty_engine.models.royalty import ExpenseModel, RoyaltyAllocationModel

__all__ = [
    "Base",
    "TimestampMixin",
    "AgreementModel",
    "OriginalPublisherModel",
    "PayeeModel",
    "WorkModel",
    "WorkPublisherModel",
    "WorkWriterModel",
    "WriterModel",
    "BatchOperationModel",
    "PayoutModel",
    "QuarterlyBalanceReportModel",
    "WorkflowAuditEntryModel",
    "ExpenseModel",
    "RoyaltyAllocationModel",
]
