"""
Relational store access: table preparation, batched loading and the
post-load date coercion pass.
"""

from caseload.warehouse.coercion import CoercionOutcome, TypeCoercionPass
from caseload.warehouse.engine import (
    create_warehouse_engine,
    effective_batch_size,
    quote_identifier,
)
from caseload.warehouse.loader import BatchLoader
from caseload.warehouse.preparer import SchemaPreparer

__all__ = [
    "BatchLoader",
    "CoercionOutcome",
    "SchemaPreparer",
    "TypeCoercionPass",
    "create_warehouse_engine",
    "effective_batch_size",
    "quote_identifier",
]
