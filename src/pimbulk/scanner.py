"""Discover active and eligible PIM role entitlements for a subscription."""
from __future__ import annotations

import logging

from azure.core.exceptions import AzureError

from .errors import error_detail
from .models import (
    ActiveAssignment,
    FetchFailure,
    RoleEntitlement,
    ScanResult,
    ScopeType,
)

logger = logging.getLogger(__name__)

# Only schedules that target the signed-in principal.
AS_TARGET_FILTER = "asTarget()"

PROVISIONED_STATUS = "provisioned"


def scan(subscription_id: str, authz_client) -> ScanResult:
    """
    Fetch the active assignments and eligible schedules for *subscription_id*.

    Each listing is attempted exactly once.  A failed listing yields an
    empty collection and a FetchFailure on the result; it never raises, so
    a permission error on the active listing cannot hide eligible roles.
    """
    scope = subscription_scope(subscription_id)
    failures: list[FetchFailure] = []

    active: set[ActiveAssignment] = set()
    try:
        for instance in authz_client.role_assignment_schedule_instances.list_for_scope(
            scope, filter=AS_TARGET_FILTER
        ):
            if str(instance.status or "").lower() != PROVISIONED_STATUS:
                continue
            active.add(
                ActiveAssignment(
                    role_definition_id=instance.role_definition_id,
                    scope=instance.scope,
                )
            )
    except AzureError as exc:
        logger.warning("Could not list active assignments for %s: %s", subscription_id, exc)
        failures.append(_failure("list_active_assignments", subscription_id, exc))
        active = set()

    eligible: list[RoleEntitlement] = []
    try:
        for schedule in authz_client.role_eligibility_schedules.list_for_scope(
            scope, filter=AS_TARGET_FILTER
        ):
            entitlement = _to_entitlement(schedule, scope)
            if entitlement is not None:
                eligible.append(entitlement)
    except AzureError as exc:
        logger.warning("Could not list eligible schedules for %s: %s", subscription_id, exc)
        failures.append(_failure("list_eligible_schedules", subscription_id, exc))
        eligible = []

    return ScanResult(
        subscription_id=subscription_id,
        active=frozenset(active),
        eligible=tuple(deduplicate(eligible)),
        failures=tuple(failures),
    )


def deduplicate(entitlements) -> list[RoleEntitlement]:
    """Keep the first entitlement per (role display name, scope), in input order."""
    seen: set[tuple] = set()
    unique: list[RoleEntitlement] = []
    for entitlement in entitlements:
        key = entitlement.dedup_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(entitlement)
    return unique


def is_active(entitlement: RoleEntitlement, active) -> bool:
    """
    True when an active assignment has the same role definition ID and
    scope, both compared case-insensitively like ARM resource IDs.
    """
    if entitlement.role_definition_id is None:
        return False
    key = (entitlement.role_definition_id.lower(), entitlement.scope.lower())
    return any(a.match_key == key for a in active)


def subscription_scope(subscription_id: str) -> str:
    return f"/subscriptions/{subscription_id}"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _to_entitlement(schedule, default_scope: str) -> RoleEntitlement | None:
    expanded = schedule.expanded_properties
    scope_info = getattr(expanded, "scope", None)
    scope_type = ScopeType.parse(getattr(scope_info, "type", None))
    if scope_type is None:
        # Management group and tenant scopes are not activated here.
        return None

    role_info = getattr(expanded, "role_definition", None)
    return RoleEntitlement(
        role_definition_id=schedule.role_definition_id,
        role_display_name=getattr(role_info, "display_name", None),
        scope=schedule.scope or default_scope,
        scope_type=scope_type,
        principal_id=schedule.principal_id,
    )


def _failure(operation: str, target: str, exc: Exception) -> FetchFailure:
    return FetchFailure(operation=operation, target=target, detail=error_detail(exc))
