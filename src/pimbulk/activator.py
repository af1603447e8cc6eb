"""Bulk self-activation of eligible PIM roles across subscriptions."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Callable, Iterable, Iterator, Optional

import isodate
from azure.core.exceptions import AzureError, HttpResponseError
from azure.identity import CredentialUnavailableError
from azure.mgmt.authorization.models import (
    RoleAssignmentScheduleRequest,
    RoleAssignmentScheduleRequestPropertiesScheduleInfo,
    RoleAssignmentScheduleRequestPropertiesScheduleInfoExpiration,
)

from .errors import error_detail, is_request_conflict
from .models import (
    AccountSkipped,
    AccountStarted,
    Event,
    FetchFailure,
    ListingFailed,
    RoleActivated,
    RoleEntitlement,
    RoleFailed,
    RoleSkippedActive,
    SkipReason,
)
from .policy import PolicyDurationIndex, resolve_max_durations
from .scanner import is_active, scan, subscription_scope

logger = logging.getLogger(__name__)

DEFAULT_DURATION = timedelta(hours=8)
DEFAULT_JUSTIFICATION = "Needed for work."

REQUEST_TYPE = "SelfActivate"
EXPIRATION_TYPE = "AfterDuration"

_RESOURCE_GROUP_SEGMENT = "resourcegroups"


def activate_roles(
    subscriptions: Iterable[str],
    role_filter: Iterable[str],
    subscription_client,
    authz_factory: Callable[[str], object],
    policy_index: Optional[PolicyDurationIndex] = None,
    justification: str = DEFAULT_JUSTIFICATION,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
) -> Iterator[Event]:
    """
    Activate every eligible, inactive role in each subscription, in order.

    Yields one AccountStarted (or AccountSkipped) per subscription, a
    ListingFailed for each listing that degraded to empty, then one outcome
    event per attempted role.  *authz_factory* builds an
    AuthorizationManagementClient for a subscription ID.  The policy index
    is shared across subscriptions so each scope's policy is read once.

    Failures are reported as events; the only exception that propagates is
    CredentialUnavailableError, since no subscription can be processed
    without a credential.
    """
    index = policy_index if policy_index is not None else PolicyDurationIndex()
    wanted = {name.lower() for name in role_filter}

    for subscription_id in subscriptions:
        try:
            subscription = subscription_client.subscriptions.get(subscription_id)
        except CredentialUnavailableError:
            raise
        except AzureError as exc:
            logger.debug("Skipping subscription %s: %s", subscription_id, exc)
            yield AccountSkipped(subscription_id=subscription_id, reason=error_detail(exc))
            continue

        yield AccountStarted(
            subscription_id=subscription_id,
            display_name=subscription.display_name or subscription_id,
        )

        authz_client = authz_factory(subscription_id)
        result = scan(subscription_id, authz_client)
        for failure in result.failures:
            yield _listing_failed(subscription_id, failure)

        loader = partial(resolve_max_durations, authz_client=authz_client)
        for scope in _distinct_scopes(result.eligible):
            if scope in index:
                continue
            lookup = index.ensure(scope, loader)
            if lookup.failure is not None:
                yield _listing_failed(subscription_id, lookup.failure)

        for entitlement in result.eligible:
            role_name = entitlement.role_display_name or ""
            if wanted and role_name.lower() not in wanted:
                logger.debug("Role %r not in filter, skipping", role_name)
                continue

            if is_active(entitlement, result.active):
                yield RoleSkippedActive(
                    subscription_id=subscription_id,
                    role_name=role_name,
                    scope=entitlement.scope,
                )
                continue

            duration = index.duration_for(entitlement.scope, entitlement.role_definition_id)
            if duration is None:
                duration = DEFAULT_DURATION
            yield _activate(
                authz_client,
                subscription_id,
                entitlement,
                duration,
                justification,
                clock(),
            )


def build_activation_request(
    entitlement: RoleEntitlement,
    duration: timedelta,
    justification: str,
    start: datetime,
) -> RoleAssignmentScheduleRequest:
    """Build the SelfActivate request payload for *entitlement*."""
    return RoleAssignmentScheduleRequest(
        role_definition_id=entitlement.role_definition_id,
        principal_id=entitlement.principal_id,
        request_type=REQUEST_TYPE,
        justification=justification,
        schedule_info=RoleAssignmentScheduleRequestPropertiesScheduleInfo(
            start_date_time=start,
            expiration=RoleAssignmentScheduleRequestPropertiesScheduleInfoExpiration(
                type=EXPIRATION_TYPE,
                duration=isodate.duration_isoformat(duration),
            ),
        ),
    )


def target_scope(scope: Optional[str], subscription_id: str) -> str:
    """
    Return the scope the activation request is created at.

    Resource-group entitlements are requested on the resource group;
    everything else on the subscription.
    """
    if scope:
        parts = scope.strip("/").split("/")
        lowered = [p.lower() for p in parts]
        if _RESOURCE_GROUP_SEGMENT in lowered:
            i = lowered.index(_RESOURCE_GROUP_SEGMENT)
            if i + 1 < len(parts):
                return "/" + "/".join(parts[: i + 2])
    return subscription_scope(subscription_id)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _activate(
    authz_client,
    subscription_id: str,
    entitlement: RoleEntitlement,
    duration: timedelta,
    justification: str,
    start: datetime,
) -> Event:
    role_name = entitlement.role_display_name or ""
    request = build_activation_request(entitlement, duration, justification, start)
    request_scope = target_scope(entitlement.scope, subscription_id)
    request_name = str(uuid.uuid4())

    try:
        authz_client.role_assignment_schedule_requests.create(
            request_scope, request_name, request
        )
    except HttpResponseError as exc:
        if is_request_conflict(exc):
            return RoleSkippedActive(
                subscription_id=subscription_id,
                role_name=role_name,
                scope=entitlement.scope,
                reason=SkipReason.REQUEST_EXISTS,
            )
        return _failed(subscription_id, entitlement, exc)
    except Exception as exc:
        # A write failure of any kind is reported for this role only.
        return _failed(subscription_id, entitlement, exc)

    return RoleActivated(
        subscription_id=subscription_id,
        role_name=role_name,
        scope=entitlement.scope,
        duration=duration,
    )


def _failed(subscription_id: str, entitlement: RoleEntitlement, exc: Exception) -> RoleFailed:
    logger.debug("Activation of %r failed", entitlement.role_display_name, exc_info=exc)
    return RoleFailed(
        subscription_id=subscription_id,
        role_name=entitlement.role_display_name or "",
        scope=entitlement.scope,
        error_detail=error_detail(exc),
    )


def _listing_failed(subscription_id: str, failure: FetchFailure) -> ListingFailed:
    return ListingFailed(
        subscription_id=subscription_id,
        operation=failure.operation,
        target=failure.target,
        detail=failure.detail,
    )


def _distinct_scopes(entitlements) -> list[str]:
    seen: set[str] = set()
    scopes: list[str] = []
    for entitlement in entitlements:
        key = entitlement.scope.lower()
        if key not in seen:
            seen.add(key)
            scopes.append(entitlement.scope)
    return scopes
