"""
Policy resolver.

Policies are fetched fresh in every transaction rather than cached, so a
borrow never runs against limits that were edited after it started.
"""

import logging

from sqlalchemy import select

from ..models.policy import Policy as PolicyModel
from .repository import BaseRepository, NotFoundError
from .schema import Policy as PolicyDB

logger = logging.getLogger(__name__)


class PolicyRepository(BaseRepository):
    """Read-only access to per-library policies."""

    def __init__(self, session, default_reservation_expiry_days: int = 7):
        super().__init__(session)
        self.default_reservation_expiry_days = default_reservation_expiry_days

    def get_policy(self, library_id: str) -> PolicyModel:
        """
        Resolve the policy of a library.

        Raises:
            NotFoundError: If the library has no policy
        """
        policy = self.session.execute(
            select(PolicyDB).where(PolicyDB.library_id == library_id)
        ).scalar_one_or_none()

        if policy is None:
            raise NotFoundError(f"Policy for library {library_id} not found")

        return self._to_model(policy)

    def _to_model(self, policy: PolicyDB) -> PolicyModel:
        expiry_days = policy.reservation_expiry_days
        fallback = expiry_days is None or expiry_days <= 0
        if fallback:
            logger.warning(
                "Policy %s has reservation_expiry_days=%s, using %d",
                policy.id,
                expiry_days,
                self.default_reservation_expiry_days,
            )
            expiry_days = self.default_reservation_expiry_days

        return PolicyModel(
            id=policy.id,
            library_id=policy.library_id,
            max_borrow_days=policy.max_borrow_days,
            fine_per_day=policy.fine_per_day,
            max_books_per_user=policy.max_books_per_user,
            reservation_expiry_days=expiry_days,
            expiry_fallback_applied=fallback,
        )
