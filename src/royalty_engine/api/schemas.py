"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from royalty_engine.calculators.types import AllocationType
from royalty_engine.domain import BatchOperation, BatchStatus, CalculationMethod


# ============================================================================
# Base schemas
# ============================================================================


class PeriodSchema(BaseModel):
    """Inclusive reporting period."""

    model_config = ConfigDict(from_attributes=True)

    start: date
    end: date


# ============================================================================
# Proration schemas
# ============================================================================


class ProrationRequest(BaseModel):
    """Schema for prorating one fee across works."""

    fee: Decimal = Field(ge=0)
    work_ids: list[UUID] = Field(default_factory=list)
    custom_amounts: dict[UUID, Decimal] = Field(default_factory=dict)
    allocation_type: AllocationType = AllocationType.PUBLISHING


class LicenseProrationRequest(BaseModel):
    """Schema for prorating publishing and master fees for one licence."""

    publishing_fee: Decimal = Field(ge=0)
    master_fee: Decimal = Field(default=Decimal("0"), ge=0)
    work_ids: list[UUID] = Field(default_factory=list)
    publishing_custom: dict[UUID, Decimal] = Field(default_factory=dict)
    master_custom: dict[UUID, Decimal] = Field(default_factory=dict)


class WriterAllocationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    work_id: UUID
    writer_id: UUID
    writer_name: str
    ownership_percentage: Decimal
    allocated_amount: Decimal
    allocation_type: AllocationType
    payment_priority: int
    publishing_amount: Decimal
    master_amount: Decimal


class FeeAllocationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    work_id: UUID
    title: str
    allocated_amount: Decimal
    controlled_share: Decimal
    controlled_amount: Decimal
    is_custom: bool
    fully_uncontrolled: bool
    writers: list[WriterAllocationResponse]


class ProrationResponse(BaseModel):
    """Schema for a single-fee proration."""

    model_config = ConfigDict(from_attributes=True)

    fee: Decimal
    total_allocated: Decimal
    unallocated_remainder: Decimal
    is_balanced: bool
    uncontrolled_work_ids: list[UUID]
    allocations: list[FeeAllocationResponse]


class PayeeBreakdownResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    writer_id: UUID
    writer_name: str
    total_allocation: Decimal
    publishing_allocation: Decimal
    master_allocation: Decimal
    priority_level: int


class LicenseProrationResponse(BaseModel):
    """Schema for a licence proration with per-writer totals."""

    publishing: ProrationResponse
    master: ProrationResponse
    writer_allocations: list[WriterAllocationResponse]
    payee_breakdown: list[PayeeBreakdownResponse]


# ============================================================================
# Payout schemas
# ============================================================================


class PayoutCalculate(BaseModel):
    """Schema for calculating a payout without storing it."""

    period_start: date
    period_end: date
    payee_ids: list[UUID] = Field(default_factory=list)
    payee_name: str | None = None
    agreement_id: UUID | None = None
    manual_expenses: Decimal | None = Field(default=None, ge=0)
    resolve_agreement_from_payees: bool = False


class PayoutCreate(PayoutCalculate):
    """Schema for creating a draft payout."""

    payee_id: UUID
    period_label: str


class CalculationResponse(BaseModel):
    """Schema for a calculation result."""

    model_config = ConfigDict(from_attributes=True)

    payee_ids: list[UUID]
    period: PeriodSchema
    gross_royalties: Decimal
    commission_deduction: Decimal
    total_expenses: Decimal
    net_royalties: Decimal
    net_payable: Decimal
    advance_recoupment: Decimal
    amount_due: Decimal
    calculation_method: CalculationMethod
    agreement_id: UUID | None = None
    commission_percentage: Decimal
    fee_expenses: Decimal
    territory_adjustments: dict[str, Decimal]
    royalties_to_date: Decimal
    payments_to_date: Decimal
    fallback_reason: str | None = None
    row_count: int


class PayoutResponse(BaseModel):
    """Schema for payout response."""

    model_config = ConfigDict(from_attributes=True)

    payout_id: UUID
    user_id: UUID
    payee_id: UUID
    period: str
    period_start: date | None = None
    period_end: date | None = None
    gross_royalties: Decimal
    commission_deduction: Decimal
    total_expenses: Decimal
    net_payable: Decimal
    advance_recoupment: Decimal
    amount_due: Decimal
    royalties_to_date: Decimal
    payments_to_date: Decimal
    calculation_method: CalculationMethod
    agreement_id: UUID | None = None
    workflow_stage: str
    status: str
    failure_reason: str | None = None
    quarterly_report_id: UUID | None = None
    payment_date: date | None = None
    created_at: datetime
    updated_at: datetime


class TransitionRequest(BaseModel):
    """Schema for moving a payout to another workflow stage."""

    to_stage: str
    reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    actor_id: UUID | None = None


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entry_id: UUID
    payout_id: UUID
    from_stage: str
    to_stage: str
    reason: str | None = None
    metadata: dict[str, Any]
    actor_id: UUID | None = None
    created_at: datetime


class HistoryResponse(BaseModel):
    """Schema for a payout's workflow history, newest first."""

    items: list[AuditEntryResponse]
    total: int


class SideEffectRetryResponse(BaseModel):
    retried: dict[UUID, bool]
    still_pending: int


# ============================================================================
# Batch schemas
# ============================================================================


class BatchCreate(BaseModel):
    """Schema for recording a batch operation."""

    operation_type: str
    target_ids: list[UUID] = Field(min_length=1)
    config: dict[str, Any] = Field(default_factory=dict)


class BatchOutcomeResponse(BaseModel):
    target_id: UUID
    status: str
    error_code: str | None = None
    error_message: str | None = None


class BatchResponse(BaseModel):
    """Schema for batch operation response."""

    batch_id: UUID
    operation_type: str
    status: BatchStatus
    total_count: int
    completed_count: int
    failed_count: int
    outcomes: list[BatchOutcomeResponse]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_batch(cls, batch: BatchOperation) -> BatchResponse:
        return cls(
            batch_id=batch.batch_id,
            operation_type=batch.operation_type,
            status=batch.status,
            total_count=batch.total_count,
            completed_count=batch.completed_count,
            failed_count=batch.failed_count,
            outcomes=[
                BatchOutcomeResponse(
                    target_id=target_id,
                    status=batch.outcomes[target_id].status,
                    error_code=batch.outcomes[target_id].error_code,
                    error_message=batch.outcomes[target_id].error_message,
                )
                for target_id in batch.target_ids
                if target_id in batch.outcomes
            ],
            created_at=batch.created_at,
            updated_at=batch.updated_at,
        )


# ============================================================================
# Quarterly report schemas
# ============================================================================


class TrailingReportsRequest(BaseModel):
    """Schema for rebuilding a payee's trailing quarterly reports."""

    payee_id: UUID
    as_of: date | None = None
    count: int | None = Field(default=None, ge=1, le=40)


class QuarterlyReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    report_id: UUID
    payee_id: UUID
    year: int
    quarter: int
    period_label: str
    opening_balance: Decimal
    royalties_amount: Decimal
    expenses_amount: Decimal
    payments_amount: Decimal
    closing_balance: Decimal
    agreement_id: UUID | None = None


class QuarterlyReportListResponse(BaseModel):
    items: list[QuarterlyReportResponse]
    total: int


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
