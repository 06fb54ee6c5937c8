"""
Module: hostmetrics_kernel.models.owner_counter
Responsibility: One counter row per rule owner.  Every write for an owner
    locks this row (SELECT ... FOR UPDATE) and bumps it, which serializes
    concurrent writers for the same owner and yields the monotonic
    creation_seq stamped on calculation rules.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from uuid import UUID

from sqlalchemy import BigInteger
from sqlalchemy.orm import Mapped, mapped_column

from hostmetrics_kernel.db.base import Base, UUIDString


class RuleOwnerCounter(Base):
    """Per-owner write counter."""

    __tablename__ = "rule_owner_counters"

    owner_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
        unique=True,
    )

    # Last value handed out
    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    def __repr__(self) -> str:
        return f"<RuleOwnerCounter owner={self.owner_id} value={self.current_value}>"
