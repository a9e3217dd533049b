"""Remote state snapshots and reconciliation results."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

INVOKE_ACTION = "lambda:InvokeFunction"

EVENTS_PRINCIPAL = "events.amazonaws.com"
SNS_PRINCIPAL = "sns.amazonaws.com"
ALEXA_PRINCIPAL = "alexa-appkit.amazon.com"
LEX_PRINCIPAL = "lex.amazonaws.com"

MANAGED_PRINCIPALS = frozenset({EVENTS_PRINCIPAL, SNS_PRINCIPAL, ALEXA_PRINCIPAL, LEX_PRINCIPAL})
"""Principals whose statements lambda-sync creates and may therefore remove."""


@dataclass(frozen=True)
class ArtifactLocation:
    """Where the deployable artifact is staged."""

    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def as_code(self) -> dict[str, str]:
        return {"S3Bucket": self.bucket, "S3Key": self.key}


@dataclass(frozen=True)
class PermissionStatement:
    """One statement of a function's resource-based policy."""

    sid: str
    principal: str
    action: str
    source_arn: str | None = None

    @property
    def key(self) -> tuple[str, str, str | None]:
        return (self.principal, self.action, self.source_arn)

    @classmethod
    def from_policy_statement(cls, statement: dict[str, Any]) -> PermissionStatement:
        principal = statement.get("Principal", "")
        if isinstance(principal, dict):
            principal = principal.get("Service") or principal.get("AWS") or ""
        if isinstance(principal, list):
            principal = principal[0] if principal else ""

        action = statement.get("Action", "")
        if isinstance(action, list):
            action = action[0] if action else ""

        source_arn = None
        condition = statement.get("Condition") or {}
        for operator in ("ArnLike", "ArnEquals", "StringEquals", "StringLike"):
            value = (condition.get(operator) or {}).get("AWS:SourceArn")
            if value:
                source_arn = value
                break

        return cls(
            sid=statement.get("Sid", ""),
            principal=str(principal),
            action=str(action),
            source_arn=source_arn,
        )


@dataclass(frozen=True)
class Policy:
    """A function's resource-based policy as a set of permission statements."""

    statements: frozenset[PermissionStatement] = frozenset()

    @classmethod
    def from_json(cls, document: str | None) -> Policy:
        if not document:
            return cls()
        parsed = json.loads(document)
        statements = parsed.get("Statement", [])
        return cls.of(PermissionStatement.from_policy_statement(s) for s in statements)

    @classmethod
    def of(cls, statements: Iterable[PermissionStatement]) -> Policy:
        return cls(frozenset(statements))

    def allows(
        self, principal: str, source_arn: str | None = None, action: str = INVOKE_ACTION
    ) -> bool:
        return (principal, action, source_arn) in {s.key for s in self.statements}

    def has_sid(self, sid: str) -> bool:
        return any(s.sid == sid for s in self.statements)

    def managed(self) -> list[PermissionStatement]:
        """Statements granted to principals lambda-sync manages."""
        return sorted(
            (s for s in self.statements if s.principal in MANAGED_PRINCIPALS),
            key=lambda s: s.sid,
        )

    def __len__(self) -> int:
        return len(self.statements)


@dataclass(frozen=True)
class RuleState:
    """Live state of one scheduled rule."""

    name: str
    arn: str | None = None
    schedule_expression: str | None = None
    description: str | None = None
    targets_function: bool = False


@dataclass(frozen=True)
class RemoteFunctionState:
    """Point-in-time snapshot of a deployed function.

    Fetched fresh for every reconciliation and never cached across
    functions or runs.
    """

    function_name: str
    function_arn: str
    version: str = "$LATEST"
    description: str = ""
    handler: str = ""
    role: str = ""
    runtime: str | None = None
    timeout: int = 0
    memory_size: int = 0
    security_group_ids: tuple[str, ...] = ()
    subnet_ids: tuple[str, ...] = ()
    environment_variables: dict[str, str] = field(default_factory=dict)
    aliases: frozenset[str] = frozenset()
    policy: Policy = field(default_factory=Policy)
    rules: dict[str, RuleState] = field(default_factory=dict)

    @classmethod
    def from_configuration(
        cls,
        configuration: dict[str, Any],
        aliases: Iterable[str] = (),
        policy: Policy | None = None,
        rules: dict[str, RuleState] | None = None,
    ) -> RemoteFunctionState:
        """Build from a ``GetFunction`` ``Configuration`` block."""
        vpc = configuration.get("VpcConfig") or {}
        environment = (configuration.get("Environment") or {}).get("Variables") or {}
        return cls(
            function_name=configuration["FunctionName"],
            function_arn=configuration["FunctionArn"],
            version=configuration.get("Version", "$LATEST"),
            description=configuration.get("Description", ""),
            handler=configuration.get("Handler", ""),
            role=configuration.get("Role", ""),
            runtime=configuration.get("Runtime"),
            timeout=configuration.get("Timeout", 0),
            memory_size=configuration.get("MemorySize", 0),
            security_group_ids=tuple(vpc.get("SecurityGroupIds") or ()),
            subnet_ids=tuple(vpc.get("SubnetIds") or ()),
            environment_variables=dict(environment),
            aliases=frozenset(aliases),
            policy=policy or Policy(),
            rules=dict(rules or {}),
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TriggerOutcome:
    """What happened to one declared trigger."""

    kind: str
    target: str
    action: str  # "created", "updated", "skipped", "deleted", "failed"
    arn: str | None = None
    error: str | None = None


@dataclass
class FunctionResult:
    """Result of reconciling one function."""

    function_name: str
    action: str = "pending"  # "created", "updated", "skipped", "deleted", "not_found", "failed"
    version: str | None = None
    function_arn: str | None = None
    triggers: list[TriggerOutcome] = field(default_factory=list)
    orphans_removed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.action == "failed"


@dataclass(frozen=True)
class PlanEntry:
    """What a deploy would do to one function."""

    function_name: str
    action: str  # "create", "update", "skip", "failed"
    reasons: tuple[str, ...] = ()


@dataclass
class RunReport:
    """Summary of one deploy, delete or update-code run."""

    functions: list[FunctionResult] = field(default_factory=list)

    def count(self, action: str) -> int:
        return sum(1 for f in self.functions if f.action == action)

    @property
    def created(self) -> int:
        return self.count("created")

    @property
    def updated(self) -> int:
        return self.count("updated")

    @property
    def skipped(self) -> int:
        return self.count("skipped")

    @property
    def deleted(self) -> int:
        return self.count("deleted")

    @property
    def failed(self) -> int:
        return self.count("failed")

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def errors(self) -> list[str]:
        return [f"{f.function_name}: {e}" for f in self.functions for e in f.errors]
