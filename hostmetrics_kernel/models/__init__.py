"""ORM models for templates, rules, and per-owner counters."""

from hostmetrics_kernel.models.calculation_rule import CalculationRule
from hostmetrics_kernel.models.owner_counter import RuleOwnerCounter
from hostmetrics_kernel.models.rule_template import CalculationRuleTemplate

__all__ = [
    "CalculationRule",
    "CalculationRuleTemplate",
    "RuleOwnerCounter",
]
