"""Aggregation pipeline."""

from localgoose.core.aggregate.aggregate import STAGES, Aggregate

__all__ = ["Aggregate", "STAGES"]
