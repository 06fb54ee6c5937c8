"""Kernel write infrastructure: service base class and owner serialization."""

from hostmetrics_kernel.services.base import BaseService
from hostmetrics_kernel.services.owner_sequence import OwnerSequenceService

__all__ = ["BaseService", "OwnerSequenceService"]
