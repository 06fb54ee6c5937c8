"""
Module: hostmetrics_services
Responsibility:
    Imperative shell of the rule engine: template, rule and resolution
    services over a SQLAlchemy session, and the ``CalculationRuleEngine``
    facade external callers use.

Architecture position:
    Services -- may import hostmetrics_kernel, hostmetrics_engines and
    hostmetrics_config.  Services flush, never commit.
"""

from hostmetrics_services.engine import CalculationRuleEngine
from hostmetrics_services.resolution_service import ResolutionService
from hostmetrics_services.rule_service import RuleService
from hostmetrics_services.template_service import TemplateService

__all__ = [
    "CalculationRuleEngine",
    "ResolutionService",
    "RuleService",
    "TemplateService",
]
