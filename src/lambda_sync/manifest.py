"""Declarative function configuration parsing and validation.

Raw declarations (structured config or parsed ``lambdaFunctionsJSON``) are
normalized into immutable ``FunctionSpec`` records. Normalization applies
plugin-wide defaults, the function-name suffix and environment layering,
and rejects invalid declarations with ``ConfigurationError`` before any
remote call is made.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar

from .exceptions import ConfigurationError, UnknownIntegrationError
from .naming import add_suffix, keep_alive_rule_name, keep_alive_schedule

if TYPE_CHECKING:
    from .config import DeployOptions

KEEP_ALIVE_INPUT = json.dumps({"keepAlive": True})

STARTING_POSITIONS = ("LATEST", "TRIM_HORIZON")


class Integration(StrEnum):
    """Supported trigger integrations, keyed by their declaration string."""

    SCHEDULE = "CloudWatch Events - Schedule"
    DYNAMODB = "DynamoDB"
    KINESIS = "Kinesis"
    SNS = "SNS"
    SQS = "SQS"
    ALEXA_SKILLS_KIT = "Alexa Skills Kit"
    LEX = "Lex"


def _require(d: Mapping[str, Any], key: str, function_name: str | None, *aliases: str) -> Any:
    for k in (key, *aliases):
        value = d.get(k)
        if value not in (None, ""):
            return value
    raise ConfigurationError(f"'{key}' is required", field=key, function_name=function_name)


def _positive_int(value: Any, key: str, function_name: str | None) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"'{key}' must be an integer, got {value!r}", field=key, function_name=function_name
        ) from None
    if result <= 0:
        raise ConfigurationError(
            f"'{key}' must be positive, got {result}", field=key, function_name=function_name
        )
    return result


def _starting_position(d: Mapping[str, Any], function_name: str | None) -> str:
    position = str(d.get("startingPosition") or "LATEST").upper()
    if position not in STARTING_POSITIONS:
        raise ConfigurationError(
            f"'startingPosition' must be one of {', '.join(STARTING_POSITIONS)}",
            field="startingPosition",
            function_name=function_name,
        )
    return position


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScheduleTrigger:
    """Scheduled EventBridge rule invoking the function."""

    integration: ClassVar[Integration] = Integration.SCHEDULE

    rule_name: str
    schedule_expression: str
    rule_description: str = ""
    input: str | None = None

    @classmethod
    def from_dict(
        cls, d: Mapping[str, Any], suffix: str | None = None, function_name: str | None = None
    ) -> ScheduleTrigger:
        return cls(
            rule_name=add_suffix(_require(d, "ruleName", function_name), suffix),
            schedule_expression=_require(d, "scheduleExpression", function_name),
            rule_description=d.get("ruleDescription") or "",
        )

    @property
    def target(self) -> str:
        return self.rule_name


@dataclass(frozen=True)
class DynamoDBTrigger:
    """DynamoDB table stream mapped to the function."""

    integration: ClassVar[Integration] = Integration.DYNAMODB

    table_name: str
    batch_size: int = 10
    starting_position: str = "LATEST"
    enabled: bool = True

    @classmethod
    def from_dict(
        cls, d: Mapping[str, Any], suffix: str | None = None, function_name: str | None = None
    ) -> DynamoDBTrigger:
        return cls(
            table_name=add_suffix(_require(d, "dynamoDBTable", function_name), suffix),
            batch_size=_positive_int(d.get("batchSize", 10), "batchSize", function_name),
            starting_position=_starting_position(d, function_name),
            enabled=bool(d.get("enabled", True)),
        )

    @property
    def target(self) -> str:
        return self.table_name


@dataclass(frozen=True)
class KinesisTrigger:
    """Kinesis stream mapped to the function."""

    integration: ClassVar[Integration] = Integration.KINESIS

    stream_name: str
    batch_size: int = 100
    starting_position: str = "LATEST"
    enabled: bool = True

    @classmethod
    def from_dict(
        cls, d: Mapping[str, Any], suffix: str | None = None, function_name: str | None = None
    ) -> KinesisTrigger:
        return cls(
            stream_name=_require(d, "kinesisStream", function_name),
            batch_size=_positive_int(d.get("batchSize", 100), "batchSize", function_name),
            starting_position=_starting_position(d, function_name),
            enabled=bool(d.get("enabled", True)),
        )

    @property
    def target(self) -> str:
        return self.stream_name


@dataclass(frozen=True)
class SNSTrigger:
    """SNS topic subscription delivering to the function."""

    integration: ClassVar[Integration] = Integration.SNS

    topic_name: str

    @classmethod
    def from_dict(
        cls, d: Mapping[str, Any], suffix: str | None = None, function_name: str | None = None
    ) -> SNSTrigger:
        topic = _require(d, "snsTopic", function_name, "SNSTopic")
        return cls(topic_name=add_suffix(topic, suffix))

    @property
    def target(self) -> str:
        return self.topic_name


@dataclass(frozen=True)
class SQSTrigger:
    """Standard SQS queue mapped to the function. No starting position."""

    integration: ClassVar[Integration] = Integration.SQS

    queue_name: str
    batch_size: int = 10
    enabled: bool = True

    @classmethod
    def from_dict(
        cls, d: Mapping[str, Any], suffix: str | None = None, function_name: str | None = None
    ) -> SQSTrigger:
        return cls(
            queue_name=_require(d, "standardQueue", function_name),
            batch_size=_positive_int(d.get("batchSize", 10), "batchSize", function_name),
            enabled=bool(d.get("enabled", True)),
        )

    @property
    def target(self) -> str:
        return self.queue_name


@dataclass(frozen=True)
class AlexaSkillsKitTrigger:
    """Invoke permission for the Alexa Skills Kit."""

    integration: ClassVar[Integration] = Integration.ALEXA_SKILLS_KIT

    @classmethod
    def from_dict(
        cls, d: Mapping[str, Any], suffix: str | None = None, function_name: str | None = None
    ) -> AlexaSkillsKitTrigger:
        return cls()

    @property
    def target(self) -> str:
        return "alexa-appkit"


@dataclass(frozen=True)
class LexTrigger:
    """Invoke permission for an Amazon Lex bot."""

    integration: ClassVar[Integration] = Integration.LEX

    bot_name: str

    @classmethod
    def from_dict(
        cls, d: Mapping[str, Any], suffix: str | None = None, function_name: str | None = None
    ) -> LexTrigger:
        return cls(bot_name=_require(d, "lexBotName", function_name))

    @property
    def target(self) -> str:
        return self.bot_name


Trigger = (
    ScheduleTrigger
    | DynamoDBTrigger
    | KinesisTrigger
    | SNSTrigger
    | SQSTrigger
    | AlexaSkillsKitTrigger
    | LexTrigger
)

_TRIGGER_TYPES: dict[Integration, type[Trigger]] = {
    Integration.SCHEDULE: ScheduleTrigger,
    Integration.DYNAMODB: DynamoDBTrigger,
    Integration.KINESIS: KinesisTrigger,
    Integration.SNS: SNSTrigger,
    Integration.SQS: SQSTrigger,
    Integration.ALEXA_SKILLS_KIT: AlexaSkillsKitTrigger,
    Integration.LEX: LexTrigger,
}


def parse_trigger(
    d: Mapping[str, Any], suffix: str | None = None, function_name: str | None = None
) -> Trigger:
    """Parse one trigger declaration into its integration-specific record.

    Raises:
        UnknownIntegrationError: If ``integration`` is missing or unsupported
        ConfigurationError: If the kind-specific target is missing or invalid
    """
    raw = d.get("integration")
    try:
        integration = Integration(raw)
    except ValueError:
        raise UnknownIntegrationError(str(raw), function_name) from None
    return _TRIGGER_TYPES[integration].from_dict(d, suffix, function_name)


# ---------------------------------------------------------------------------
# Functions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FunctionSpec:
    """Desired state for one Lambda function and its triggers."""

    name: str
    handler: str
    role_arn: str
    runtime: str
    description: str = ""
    memory_size: int = 1024
    timeout: int = 30
    security_group_ids: tuple[str, ...] = ()
    subnet_ids: tuple[str, ...] = ()
    publish: bool = True
    keep_alive: int | None = None
    environment_variables: dict[str, str] = field(default_factory=dict)
    triggers: tuple[Trigger, ...] = ()
    aliases: tuple[str, ...] = ()
    qualifier: str | None = None

    @classmethod
    def from_dict(
        cls,
        d: Mapping[str, Any],
        options: DeployOptions,
        encrypted_env: Mapping[str, str] | None = None,
    ) -> FunctionSpec:
        """Normalize a raw function declaration against plugin-wide options.

        Args:
            d: One entry of ``lambdaFunctions``
            options: Plugin-wide defaults
            encrypted_env: Already-encrypted pass-through variables (top layer)

        Raises:
            ConfigurationError: If the declaration is invalid
        """
        raw_name = d.get("functionName")
        if not raw_name:
            raise ConfigurationError("'functionName' is required", field="functionName")
        name = add_suffix(str(raw_name), options.function_name_suffix)

        handler = _require(d, "handler", name)
        role_arn = d.get("lambdaRoleArn") or options.lambda_role_arn
        if not role_arn:
            raise ConfigurationError(
                "'lambdaRoleArn' is required", field="lambdaRoleArn", function_name=name
            )

        publish = d.get("publish")
        publish = options.publish if publish is None else bool(publish)

        aliases = d.get("aliases")
        if aliases is None:
            aliases = [options.version] if publish and options.version else []

        keep_alive = d.get("keepAlive")
        if keep_alive is not None:
            keep_alive = _positive_int(keep_alive, "keepAlive", name)

        triggers = tuple(
            parse_trigger(t, options.function_name_suffix, name) for t in d.get("triggers") or []
        )

        environment: dict[str, str] = {}
        for layer in (
            options.environment_variables,
            d.get("environmentVariables") or {},
            options.pass_through,
            encrypted_env or {},
        ):
            environment.update({str(k): str(v) for k, v in layer.items()})

        return cls(
            name=name,
            handler=handler,
            role_arn=role_arn,
            runtime=d.get("runtime") or options.runtime,
            description=d.get("description") or "",
            memory_size=_positive_int(
                d.get("memorySize") or options.memory_size, "memorySize", name
            ),
            timeout=_positive_int(d.get("timeout") or options.timeout, "timeout", name),
            security_group_ids=tuple(d.get("securityGroupIds") or options.vpc_security_group_ids),
            subnet_ids=tuple(d.get("subnetIds") or options.vpc_subnet_ids),
            publish=publish,
            keep_alive=keep_alive,
            environment_variables=environment,
            triggers=triggers,
            aliases=tuple(str(a) for a in aliases),
            qualifier=d.get("qualifier") or None,
        )

    @property
    def keep_alive_trigger(self) -> ScheduleTrigger | None:
        """Synthetic schedule rule that keeps the function warm, if configured."""
        if not self.keep_alive:
            return None
        return ScheduleTrigger(
            rule_name=keep_alive_rule_name(self.name),
            schedule_expression=keep_alive_schedule(self.keep_alive),
            rule_description=f"Keep-alive for {self.name}",
            input=KEEP_ALIVE_INPUT,
        )

    @property
    def scheduled_rules(self) -> tuple[ScheduleTrigger, ...]:
        """Declared schedule triggers plus the keep-alive rule."""
        rules = tuple(t for t in self.triggers if isinstance(t, ScheduleTrigger))
        keep_alive = self.keep_alive_trigger
        return rules + (keep_alive,) if keep_alive else rules

    def triggers_of(self, *kinds: type[Trigger]) -> list[Trigger]:
        return [t for t in self.triggers if isinstance(t, kinds)]

    def vpc_config(self) -> dict[str, list[str]]:
        return {
            "SubnetIds": list(self.subnet_ids),
            "SecurityGroupIds": list(self.security_group_ids),
        }
