"""
Typed Exception Hierarchy for the HostMetrics rule engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (report generation, booking import, the settings UI) must react to
rule-engine failures precisely.  Every error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Example:
    try:
        engine.create_rule(owner_id, "airbnb", "mgmtFee", "[totalPayout] * 0.15")
    except FormulaSyntaxError as e:
        api_response(code=e.code, formula=e.formula, position=e.position)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    HostMetricsError (base)
    |
    +-- FormulaError
    |   +-- FormulaSyntaxError
    |
    +-- PlatformError
    |   +-- UnknownPlatformError
    |
    +-- TemplateError
    |   +-- TemplateNotFoundError
    |   +-- TemplateNameConflictError
    |   +-- DefaultTemplateConflictError
    |   +-- TemplateValidationError
    |
    +-- RuleError
    |   +-- RuleNotFoundError
    |   +-- RuleOwnershipError
    |   +-- RuleValidationError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ConfigurationError
        +-- AdapterConfigError

    TemplateNotEmptyOnDeleteWarning (UserWarning, informational)

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Formula         | FORMULA_SYNTAX_ERROR        | Formula text does not parse
----------------|-----------------------------|-----------------------------------------
Platform        | UNKNOWN_PLATFORM            | Platform outside the closed enumeration
----------------|-----------------------------|-----------------------------------------
Template        | TEMPLATE_NOT_FOUND          | Template ID missing or owned by another user
                | TEMPLATE_NAME_CONFLICT      | Owner already has a template with this name
                | DEFAULT_TEMPLATE_CONFLICT   | Operation would leave zero/multiple defaults
                | TEMPLATE_INVALID            | Template name is blank or too long
----------------|-----------------------------|-----------------------------------------
Rule            | RULE_NOT_FOUND              | Rule ID doesn't exist
                | RULE_OWNERSHIP              | Rule/template belong to different owners
                | RULE_INVALID                | Target field or priority is malformed
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Concurrent modification detected
----------------|-----------------------------|-----------------------------------------
Configuration   | ADAPTER_CONFIG_INVALID      | Platform adapter YAML failed validation

Evaluation-time data problems (missing field, wrong type, failed lookup) are
NOT errors.  They resolve to an absent value.
"""


class HostMetricsError(Exception):
    """
    Base exception for all rule-engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "HOSTMETRICS_ERROR"


# Formula-related exceptions


class FormulaError(HostMetricsError):
    """Base exception for formula-related errors."""

    code: str = "FORMULA_ERROR"


class FormulaSyntaxError(FormulaError):
    """
    Formula text failed to parse.

    Raised at rule creation/update time so that a user-authored mistake is
    caught immediately instead of surfacing during batch resolution.
    """

    code: str = "FORMULA_SYNTAX_ERROR"

    def __init__(self, formula: str, message: str, position: int = 0):
        self.formula = formula
        self.reason = message
        self.position = position
        super().__init__(
            f"Invalid formula {formula!r} at position {position}: {message}"
        )


# Platform-related exceptions


class PlatformError(HostMetricsError):
    """Base exception for platform-related errors."""

    code: str = "PLATFORM_ERROR"


class UnknownPlatformError(PlatformError):
    """Platform is not part of the closed enumeration."""

    code: str = "UNKNOWN_PLATFORM"

    def __init__(self, platform: str, reason: str = "not a known platform"):
        self.platform = platform
        self.reason = reason
        super().__init__(f"Unknown platform {platform!r}: {reason}")


# Template-related exceptions


class TemplateError(HostMetricsError):
    """Base exception for template-related errors."""

    code: str = "TEMPLATE_ERROR"


class TemplateNotFoundError(TemplateError):
    """Template with given ID was not found for the owner."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Template not found: {template_id}")


class TemplateNameConflictError(TemplateError):
    """Owner already has a template with this name."""

    code: str = "TEMPLATE_NAME_CONFLICT"

    def __init__(self, owner_id: str, template_name: str):
        self.owner_id = owner_id
        self.template_name = template_name
        super().__init__(
            f"Template name {template_name!r} already exists for owner {owner_id}"
        )


class DefaultTemplateConflictError(TemplateError):
    """
    Operation would leave an owner with zero or multiple default templates.

    Default changes go through the atomic promotion operation only.
    """

    code: str = "DEFAULT_TEMPLATE_CONFLICT"

    def __init__(self, owner_id: str, template_id: str, reason: str):
        self.owner_id = owner_id
        self.template_id = template_id
        self.reason = reason
        super().__init__(
            f"Default template conflict for owner {owner_id} "
            f"(template {template_id}): {reason}"
        )


class TemplateValidationError(TemplateError):
    """Template fields are malformed."""

    code: str = "TEMPLATE_INVALID"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid template {field} {value!r}: {reason}")


# Rule-related exceptions


class RuleError(HostMetricsError):
    """Base exception for rule-related errors."""

    code: str = "RULE_ERROR"


class RuleNotFoundError(RuleError):
    """Rule with given ID was not found."""

    code: str = "RULE_NOT_FOUND"

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Calculation rule not found: {rule_id}")


class RuleOwnershipError(RuleError):
    """Rule and template (or caller) belong to different owners."""

    code: str = "RULE_OWNERSHIP"

    def __init__(self, owner_id: str, entity_id: str):
        self.owner_id = owner_id
        self.entity_id = entity_id
        super().__init__(f"Owner {owner_id} does not own {entity_id}")


class RuleValidationError(RuleError):
    """Rule fields other than the formula are malformed."""

    code: str = "RULE_INVALID"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid rule {field} {value!r}: {reason}")


# Concurrency-related exceptions


class ConcurrencyError(HostMetricsError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Configuration-related exceptions


class ConfigurationError(HostMetricsError):
    """Base exception for configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class AdapterConfigError(ConfigurationError):
    """Platform adapter configuration failed validation."""

    code: str = "ADAPTER_CONFIG_INVALID"

    def __init__(self, source: str, errors: list[str]):
        self.source = source
        self.errors = errors
        super().__init__(
            f"Adapter configuration {source} is invalid: "
            f"{len(errors)} error(s): " + "; ".join(errors)
        )


# Warnings


class TemplateNotEmptyOnDeleteWarning(UserWarning):
    """
    A template delete cascaded to its rules.

    Informational only.  The deletion still happens; the caller is told how
    many rules were removed.
    """

    code: str = "TEMPLATE_NOT_EMPTY_ON_DELETE"

    def __init__(self, template_id: str, deleted_rule_count: int):
        self.template_id = template_id
        self.deleted_rule_count = deleted_rule_count
        super().__init__(
            f"Deleting template {template_id} also removed "
            f"{deleted_rule_count} calculation rule(s)"
        )
