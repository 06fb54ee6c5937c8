"""Read-only selectors returning DTOs."""

from hostmetrics_kernel.selectors.base import BaseSelector
from hostmetrics_kernel.selectors.custom_field_selector import CustomFieldSelector
from hostmetrics_kernel.selectors.rule_selector import RuleSelector
from hostmetrics_kernel.selectors.template_selector import TemplateSelector

__all__ = [
    "BaseSelector",
    "CustomFieldSelector",
    "RuleSelector",
    "TemplateSelector",
]
