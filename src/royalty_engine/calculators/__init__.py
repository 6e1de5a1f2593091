"""Royalty calculation primitives.

The calculators themselves live in ``proration`` and ``royalty_calculator``;
they depend on the ownership service and are imported from their modules.
"""

from royalty_engine.calculators.money import (
    distribute_evenly,
    percent_of,
    round_money,
    to_decimal,
)
from royalty_engine.calculators.types import (
    AllocationType,
    FeeAllocation,
    PayeeBreakdown,
    PayoutCalculationRequest,
    ProrationResult,
    RoyaltyCalculationResult,
    WriterAllocation,
)

__all__ = [
    "distribute_evenly",
    "percent_of",
    "round_money",
    "to_decimal",
    "AllocationType",
    "FeeAllocation",
    "PayeeBreakdown",
    "PayoutCalculationRequest",
    "ProrationResult",
    "RoyaltyCalculationResult",
    "WriterAllocation",
]
