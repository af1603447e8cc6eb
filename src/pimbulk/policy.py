"""Resolve maximum activation durations from PIM role management policies."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

import isodate
from azure.core.exceptions import AzureError

from .errors import error_detail
from .models import FetchFailure, PolicyLookup

logger = logging.getLogger(__name__)

EXPIRATION_RULE_TYPE = "rolemanagementpolicyexpirationrule"

# Activation limits target the "Assignment" level; "Eligibility" limits
# govern how long the eligibility itself lasts.
ASSIGNMENT_LEVEL = "assignment"

# Anchor for converting calendar durations (P1M, P1Y) to a timedelta.
_DURATION_ANCHOR = datetime(2000, 1, 1)


def resolve_max_durations(scope: str, authz_client) -> PolicyLookup:
    """
    Return the maximum activation duration per role definition at *scope*.

    Reads every role management policy assignment bound to *scope* and
    picks the expiration rule targeting the assignment level.  Roles
    without such a rule are absent from the result.  A failed listing
    returns an empty lookup carrying the failure; it never raises.
    """
    durations: dict[str, timedelta] = {}
    try:
        for assignment in authz_client.role_management_policy_assignments.list_for_scope(scope):
            role_definition_id = assignment.role_definition_id
            if not role_definition_id:
                continue
            rule = _activation_expiration_rule(assignment.effective_rules or ())
            if rule is None or not rule.maximum_duration:
                continue
            duration = parse_duration(rule.maximum_duration)
            if duration is None:
                logger.warning(
                    "Ignoring unparsable maximum duration %r for %s at %s",
                    rule.maximum_duration,
                    role_definition_id,
                    scope,
                )
                continue
            durations[role_definition_id.lower()] = duration
    except AzureError as exc:
        logger.warning("Could not list policy assignments for %s: %s", scope, exc)
        failure = FetchFailure(
            operation="list_policy_assignments", target=scope, detail=error_detail(exc)
        )
        return PolicyLookup(scope=scope, durations={}, failure=failure)

    return PolicyLookup(scope=scope, durations=durations)


def parse_duration(value) -> Optional[timedelta]:
    """Parse an ISO-8601 duration (``PT8H``) into a timedelta; None if invalid."""
    if isinstance(value, timedelta):
        return value
    try:
        parsed = isodate.parse_duration(str(value))
    except (isodate.ISO8601Error, ValueError):
        return None
    if isinstance(parsed, isodate.Duration):
        parsed = parsed.totimedelta(start=_DURATION_ANCHOR)
    return parsed


class PolicyDurationIndex:
    """
    Run-level store of scope -> (role definition ID -> maximum duration).

    Each scope is loaded at most once per index, even under concurrent
    callers; once loaded an entry is never refreshed.  Scope and role
    definition keys compare case-insensitively.
    """

    def __init__(self) -> None:
        self._lookups: dict[str, PolicyLookup] = {}
        self._lock = threading.Lock()
        self._scope_locks: dict[str, threading.Lock] = {}

    def __contains__(self, scope: str) -> bool:
        return scope.lower() in self._lookups

    def __len__(self) -> int:
        return len(self._lookups)

    def ensure(self, scope: str, loader: Callable[[str], PolicyLookup]) -> PolicyLookup:
        """Return the lookup for *scope*, calling *loader* only on first use."""
        key = scope.lower()
        lookup = self._lookups.get(key)
        if lookup is not None:
            return lookup

        with self._lock:
            scope_lock = self._scope_locks.setdefault(key, threading.Lock())
        with scope_lock:
            lookup = self._lookups.get(key)
            if lookup is None:
                lookup = loader(scope)
                self._lookups[key] = lookup
        return lookup

    def duration_for(self, scope: str, role_definition_id: Optional[str]) -> Optional[timedelta]:
        if not role_definition_id:
            return None
        lookup = self._lookups.get(scope.lower())
        if lookup is None:
            return None
        return lookup.durations.get(role_definition_id.lower())


def _activation_expiration_rule(rules):
    for rule in rules:
        rule_type = str(getattr(rule, "rule_type", "") or "").lower()
        if rule_type != EXPIRATION_RULE_TYPE:
            continue
        target = getattr(rule, "target", None)
        level = str(getattr(target, "level", "") or "").lower()
        if level == ASSIGNMENT_LEVEL:
            return rule
    return None
