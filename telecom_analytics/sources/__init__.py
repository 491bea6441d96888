"""
Source Access Module
"""
from .accessor import SourceAccessor, SqlSourceAccessor
from .schemas import (
    SourceSnapshot,
    build_frame,
    customers_frame,
    plans_frame,
    sims_frame,
    fibers_frame,
    payments_frame,
)

__all__ = [
    "SourceAccessor",
    "SqlSourceAccessor",
    "SourceSnapshot",
    "build_frame",
    "customers_frame",
    "plans_frame",
    "sims_frame",
    "fibers_frame",
    "payments_frame",
]
