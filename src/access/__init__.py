"""Prerequisite-based access decisions for courses and lessons."""

from .evaluator import AccessDecision, AccessEvaluator


__all__ = ["AccessDecision", "AccessEvaluator"]
