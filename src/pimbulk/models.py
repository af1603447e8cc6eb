"""Pure data models for pimbulk. No I/O, no Azure calls."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Optional, Union


class ScopeType(Enum):
    SUBSCRIPTION = "subscription"
    RESOURCE_GROUP = "resourcegroup"

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["ScopeType"]:
        """Map an ARM scope type string to a ScopeType; None if unsupported."""
        if not raw:
            return None
        normalized = str(raw).lower()
        for member in cls:
            if member.value == normalized:
                return member
        return None


class SkipReason(Enum):
    ALREADY_ACTIVE = "already_active"
    REQUEST_EXISTS = "request_exists"


@dataclass(frozen=True)
class RoleEntitlement:
    """An eligible role schedule the caller may self-activate."""

    role_definition_id: Optional[str]
    role_display_name: Optional[str]
    scope: str
    scope_type: ScopeType
    principal_id: Optional[str]

    @property
    def dedup_key(self) -> tuple[Optional[str], str]:
        return (self.role_display_name, self.scope)


@dataclass(frozen=True)
class ActiveAssignment:
    """A provisioned role assignment instance (already active)."""

    role_definition_id: Optional[str]
    scope: Optional[str]

    @property
    def match_key(self) -> tuple[str, str]:
        return ((self.role_definition_id or "").lower(), (self.scope or "").lower())


@dataclass(frozen=True)
class FetchFailure:
    """A remote listing that failed and was treated as empty."""

    operation: str
    target: str
    detail: str


@dataclass(frozen=True)
class ScanResult:
    """Active and eligible entitlements discovered for one subscription."""

    subscription_id: str
    active: frozenset[ActiveAssignment]
    eligible: tuple[RoleEntitlement, ...]
    failures: tuple[FetchFailure, ...] = field(default=())


@dataclass(frozen=True)
class PolicyLookup:
    """Maximum activation durations for one scope, keyed by lower-cased role definition ID."""

    scope: str
    durations: dict[str, timedelta]
    failure: Optional[FetchFailure] = None


# ---------------------------------------------------------------------------
# Events consumed by the reporting sink
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountStarted:
    subscription_id: str
    display_name: str


@dataclass(frozen=True)
class AccountSkipped:
    subscription_id: str
    reason: str


@dataclass(frozen=True)
class ListingFailed:
    """A listing that failed and was treated as empty for this run."""

    subscription_id: str
    operation: str
    target: str
    detail: str


@dataclass(frozen=True)
class RoleActivated:
    subscription_id: str
    role_name: str
    scope: str
    duration: timedelta

    @property
    def duration_hours(self) -> float:
        return self.duration.total_seconds() / 3600


@dataclass(frozen=True)
class RoleSkippedActive:
    subscription_id: str
    role_name: str
    scope: str
    reason: SkipReason = SkipReason.ALREADY_ACTIVE


@dataclass(frozen=True)
class RoleFailed:
    subscription_id: str
    role_name: str
    scope: str
    error_detail: str


Event = Union[
    AccountStarted,
    AccountSkipped,
    ListingFailed,
    RoleActivated,
    RoleSkippedActive,
    RoleFailed,
]
