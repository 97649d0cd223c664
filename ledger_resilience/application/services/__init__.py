"""Application services wired into the worker and routes."""

from ledger_resilience.application.services.aggregation import MonthlyAggregationRefresher

__all__ = ["MonthlyAggregationRefresher"]
