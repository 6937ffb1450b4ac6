"""SQLModel database models for cratehub."""

from cratehub.models.api_keys import ApiKey
from cratehub.models.crates import (
    ANONYMOUS_OWNER,
    Crate,
    CrateBase,
    CrateCategory,
    CrateStatus,
)
from cratehub.models.usage import CrateEventRecord, MetricCounter, UsageCounter

__all__ = [
    "ANONYMOUS_OWNER",
    "ApiKey",
    "Crate",
    "CrateBase",
    "CrateCategory",
    "CrateEventRecord",
    "CrateStatus",
    "MetricCounter",
    "UsageCounter",
]
