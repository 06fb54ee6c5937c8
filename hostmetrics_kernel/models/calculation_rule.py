"""
Module: hostmetrics_kernel.models.calculation_rule
Responsibility: ORM persistence for user-authored calculation rules: one
    (platform, target field, formula, priority) override owned by a property
    manager, optionally grouped in a template.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - template_id references calculation_rule_templates with ON DELETE
      CASCADE; untemplated rules (NULL) apply globally for the owner.
    - creation_seq is allocated from the owner's locked counter row and is
      strictly increasing per owner.  It orders "most recently created first"
      among precedence ties.
    - version is SQLAlchemy's version_id_col: an UPDATE against a stale
      version raises StaleDataError (translated to OptimisticLockError).

Failure modes:
    - StaleDataError on concurrent modification of the same rule.
"""

from uuid import UUID

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hostmetrics_kernel.db.base import TrackedBase, UUIDString


class CalculationRule(TrackedBase):
    """
    A single calculation-rule override.

    Contract:
        The formula is stored verbatim; it has been validated by the formula
        parser before it reaches this table.

    Guarantees:
        - rule id never changes across edits.
        - Deactivation keeps the row (history) but removes it from resolution.
    """

    __tablename__ = "calculation_rules"

    __table_args__ = (
        Index("idx_rule_owner_field", "owner_id", "target_field"),
        Index("idx_rule_owner_platform", "owner_id", "platform"),
        Index("idx_rule_template", "template_id"),
    )

    owner_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    template_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("calculation_rule_templates.id", ondelete="CASCADE"),
        nullable=True,
    )

    # "ALL" or a concrete channel identifier
    platform: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    # Canonical financial field wire name or a custom field name
    target_field: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    formula: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    # Lower value wins among ties; NULL sorts last
    priority: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    creation_seq: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        state = "active" if self.is_active else "inactive"
        return (
            f"<CalculationRule {self.platform}/{self.target_field} "
            f"p={self.priority} {state}>"
        )
