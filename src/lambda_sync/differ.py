"""Drift detection between a declared function and its live configuration.

Compares a ``FunctionSpec`` against a ``RemoteFunctionState`` field by field
and decides whether an update is required. Scheduled rules (keep-alive
included) are checked here once; the trigger reconciler acts on the
resulting ``stale_rules`` without describing the rules again.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from .manifest import FunctionSpec
from .models import RemoteFunctionState, RuleState


@dataclass(frozen=True)
class Drift:
    """Outcome of comparing desired and live state."""

    changed: bool
    reasons: tuple[str, ...] = ()
    stale_rules: frozenset[str] = frozenset()


def stale_rules(spec: FunctionSpec, rules: Mapping[str, RuleState]) -> frozenset[str]:
    """Declared rules that are missing, differ, or do not target the function."""
    stale = set()
    for trigger in spec.scheduled_rules:
        live = rules.get(trigger.rule_name)
        if (
            live is None
            or live.arn is None
            or live.schedule_expression != trigger.schedule_expression
            or (live.description or "") != trigger.rule_description
            or not live.targets_function
        ):
            stale.add(trigger.rule_name)
    return frozenset(stale)


def detect_drift(
    spec: FunctionSpec,
    remote: RemoteFunctionState,
    force_update: bool = False,
) -> Drift:
    """Compare ``spec`` against ``remote``.

    Args:
        spec: Desired state
        remote: Live state (the caller handles the "function absent" case)
        force_update: Report a change even when nothing differs

    Returns:
        Drift with ``changed`` set when any compared field differs.
    """
    reasons: list[str] = []

    if remote.description != spec.description:
        reasons.append("description")
    if remote.handler != spec.handler:
        reasons.append("handler")
    if remote.role != spec.role_arn:
        reasons.append("role")
    if remote.timeout != spec.timeout:
        reasons.append("timeout")
    if remote.memory_size != spec.memory_size:
        reasons.append("memory size")
    if set(remote.security_group_ids) != set(spec.security_group_ids):
        reasons.append("security groups")
    if set(remote.subnet_ids) != set(spec.subnet_ids):
        reasons.append("subnets")

    missing_aliases = set(spec.aliases) - remote.aliases
    if missing_aliases:
        reasons.append(f"aliases ({', '.join(sorted(missing_aliases))})")

    stale = stale_rules(spec, remote.rules)
    reasons.extend(f"rule {name}" for name in sorted(stale))

    if force_update:
        reasons.insert(0, "force update")

    return Drift(changed=bool(reasons), reasons=tuple(reasons), stale_rules=stale)


def is_changed(spec: FunctionSpec, remote: RemoteFunctionState, force_update: bool = False) -> bool:
    """Whether ``spec`` requires an update of ``remote``."""
    return detect_drift(spec, remote, force_update).changed
