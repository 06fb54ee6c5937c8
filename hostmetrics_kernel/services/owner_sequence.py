"""
OwnerSequenceService -- per-owner write serialization via a locked counter row.

Responsibility:
    Every template/rule write for an owner begins by locking that owner's
    counter row (``SELECT ... FOR UPDATE``) and incrementing it.  Concurrent
    writers for the same owner therefore queue behind each other, which
    protects the default-template uniqueness invariant and priority
    reordering from lost updates.  The incremented value doubles as the
    rule ``creation_seq``.

Invariants enforced:
    - Sequences are strictly increasing per owner.  The aggregate
      max-plus-one pattern is never used; the locked row is the sole source
      of truth.
    - The increment is transactional: it becomes visible when the caller's
      transaction commits and is returned on rollback.

Failure modes:
    - OptimisticLockError when two transactions race to create the first
      counter row for the same owner.  The loser's transaction must be
      rolled back and retried by the caller.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hostmetrics_kernel.exceptions import OptimisticLockError
from hostmetrics_kernel.logging_config import get_logger
from hostmetrics_kernel.models.owner_counter import RuleOwnerCounter

logger = get_logger("services.owner_sequence")


class OwnerSequenceService:
    """
    Allocates per-owner sequence values under a row lock.

    Usage:
        with session_scope() as session:
            seq = OwnerSequenceService(session).next_value(owner_id)
            # owner row stays locked until commit/rollback
    """

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, owner_id: UUID) -> int:
        """
        Lock the owner's counter row and return the next value.

        Postconditions:
            - Returns an integer > 0, strictly greater than any previously
              returned value for this owner.
            - The counter row is locked until the transaction completes.
        """
        counter = self._session.execute(
            select(RuleOwnerCounter)
            .where(RuleOwnerCounter.owner_id == owner_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            counter = RuleOwnerCounter(owner_id=owner_id, current_value=1)
            self._session.add(counter)
            try:
                self._session.flush()
            except IntegrityError as exc:
                logger.warning(
                    "owner_counter_race",
                    extra={"owner_id": str(owner_id)},
                )
                raise OptimisticLockError("rule_owner", str(owner_id)) from exc
            logger.debug(
                "owner_sequence_allocated",
                extra={"owner_id": str(owner_id), "value": 1},
            )
            return 1

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "owner_sequence_allocated",
            extra={"owner_id": str(owner_id), "value": counter.current_value},
        )
        return counter.current_value

    def allocate(self, owner_id: UUID, count: int) -> list[int]:
        """Allocate ``count`` consecutive values (bulk rule creation)."""
        return [self.next_value(owner_id) for _ in range(count)]

    def current_value(self, owner_id: UUID) -> int:
        """Current value without incrementing (0 if the owner never wrote)."""
        value = self._session.execute(
            select(RuleOwnerCounter.current_value).where(
                RuleOwnerCounter.owner_id == owner_id
            )
        ).scalar_one_or_none()
        return value or 0
