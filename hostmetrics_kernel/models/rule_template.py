"""
Module: hostmetrics_kernel.models.rule_template
Responsibility: ORM persistence for named, owner-scoped groupings of
    calculation rules.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - template_name is unique per owner (uq_template_owner_name).
    - At most one template per owner has is_template_default = True
      (uq_template_owner_default, a partial unique index).  The promotion
      service clears the old default and flushes before setting the new one
      so the index is never violated mid-operation.
    - Renaming never changes the primary key.

Failure modes:
    - IntegrityError on duplicate name or on a second default (translated to
      TemplateNameConflictError / DefaultTemplateConflictError by the service).
"""

from uuid import UUID

from sqlalchemy import Boolean, Index, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from hostmetrics_kernel.db.base import TrackedBase, UUIDString


class CalculationRuleTemplate(TrackedBase):
    """
    Named grouping of calculation rules owned by one property manager.

    Contract:
        Rules reference a template through calculation_rules.template_id
        (ON DELETE CASCADE).  Deleting a template removes its rules.

    Non-goals:
        - Does not hold rule precedence; priority lives on each rule.
    """

    __tablename__ = "calculation_rule_templates"

    __table_args__ = (
        UniqueConstraint("owner_id", "template_name", name="uq_template_owner_name"),
        Index(
            "uq_template_owner_default",
            "owner_id",
            unique=True,
            postgresql_where=text("is_template_default"),
            sqlite_where=text("is_template_default = 1"),
        ),
        Index("idx_template_owner", "owner_id"),
    )

    owner_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    template_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    template_description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    is_template_default: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    def __repr__(self) -> str:
        flag = " default" if self.is_template_default else ""
        return f"<CalculationRuleTemplate {self.template_name!r}{flag} owner={self.owner_id}>"
