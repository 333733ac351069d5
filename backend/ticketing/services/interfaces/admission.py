"""
Admission control strategy interface.
Allows swapping between different fail-fast gates in front of seat claims.
"""

from abc import ABC, abstractmethod


class AdmissionStrategy(ABC):
    """
    Interface for admission control strategies.

    Implementations:
    - OptimisticAdmission: No pre-check, rely on the conditional claim
    - RedisAdmission: Fail fast in Redis when a resource is sold out
    """

    @abstractmethod
    async def admit(self, resource_id: int) -> bool:
        """
        Check if a reservation attempt should reach the database.

        Returns:
            True if admitted (proceed to claim)
            False if rejected (sold out, fail fast)
        """
        pass

    @abstractmethod
    async def sync(self, resource_id: int, available_count: int):
        """
        Publish the database's available_count after it changed.

        Args:
            resource_id: Resource ID
            available_count: Committed available_count from DB
        """
        pass
