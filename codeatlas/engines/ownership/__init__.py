"""Semantic ownership calculator."""

from codeatlas.engines.ownership.calculator import calculate_ownership, unit_distribution
from codeatlas.engines.ownership.runner import OwnershipRunner

__all__ = ["OwnershipRunner", "calculate_ownership", "unit_distribution"]
