"""Persistence helpers for infraplan."""

from .plan_store import PlanStore

__all__ = ["PlanStore"]
