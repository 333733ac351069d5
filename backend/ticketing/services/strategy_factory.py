"""
Admission strategy factory.
Configures which admission control strategy to use.
"""

from typing import Optional

from ticketing.services.interfaces.admission import AdmissionStrategy
from ticketing.services.interfaces.optimistic_admission import OptimisticAdmission
from ticketing.services.admission_service import RedisAdmission
from ticketing.core.config import get_settings


def get_admission_strategy() -> AdmissionStrategy:
    """
    Build the configured admission strategy.

    ADMISSION_STRATEGY=redis turns on the Redis gate; anything else keeps
    the optimistic (no pre-check) behaviour.
    """
    if get_settings().ADMISSION_STRATEGY == "redis":
        return RedisAdmission()
    return OptimisticAdmission()


_strategy: Optional[AdmissionStrategy] = None


def get_admission() -> AdmissionStrategy:
    """Get admission strategy singleton."""
    global _strategy
    if _strategy is None:
        _strategy = get_admission_strategy()
    return _strategy
