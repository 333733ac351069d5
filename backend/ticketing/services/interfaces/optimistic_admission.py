"""
Optimistic admission strategy - no pre-check.
Relies entirely on the conditional seat claim.
"""

from ticketing.services.interfaces.admission import AdmissionStrategy


class OptimisticAdmission(AdmissionStrategy):
    """
    No admission control - always admit.

    Use when:
    - Normal load scenarios
    - Redis is not deployed
    """

    async def admit(self, resource_id: int) -> bool:
        """Always admit - let the claim decide."""
        return True

    async def sync(self, resource_id: int, available_count: int):
        pass
