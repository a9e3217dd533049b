"""Trigger reconciliation, orphan cleanup and teardown.

Each declared trigger is brought to its desired state in a fixed order:
scheduled rules, stream sources, queues, topics, invoke grants, keep-alive.
One failing trigger is recorded and does not stop the others. Identities
used for orphan detection (rule ARNs, topic ARNs, statement ids) are
derived the same way for creation, sweep and teardown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, assert_never

from botocore.exceptions import ClientError

from .exceptions import ResourceResolutionError, is_not_found
from .manifest import (
    AlexaSkillsKitTrigger,
    DynamoDBTrigger,
    FunctionSpec,
    KinesisTrigger,
    LexTrigger,
    ScheduleTrigger,
    SNSTrigger,
    SQSTrigger,
    Trigger,
)
from .models import (
    ALEXA_PRINCIPAL,
    EVENTS_PRINCIPAL,
    INVOKE_ACTION,
    LEX_PRINCIPAL,
    SNS_PRINCIPAL,
    PermissionStatement,
    Policy,
    TriggerOutcome,
)
from .naming import FunctionArn, statement_id
from .orphans import OrphanSweep, SweepResult
from .remote import RemoteStateReader

if TYPE_CHECKING:
    from .clients import AwsClients

logger = logging.getLogger(__name__)

RULE_TARGET_ID = "1"

MappedTrigger = DynamoDBTrigger | KinesisTrigger | SQSTrigger


def ordered_triggers(spec: FunctionSpec) -> list[Trigger]:
    """Declared triggers in reconciliation order, keep-alive last."""
    ordered: list[Trigger] = [
        *spec.triggers_of(ScheduleTrigger),
        *spec.triggers_of(DynamoDBTrigger, KinesisTrigger),
        *spec.triggers_of(SQSTrigger),
        *spec.triggers_of(SNSTrigger),
        *spec.triggers_of(AlexaSkillsKitTrigger, LexTrigger),
    ]
    keep_alive = spec.keep_alive_trigger
    if keep_alive is not None:
        ordered.append(keep_alive)
    return ordered


def permission_for(trigger: Trigger, arn: FunctionArn) -> PermissionStatement | None:
    """The invoke grant ``trigger`` needs, or ``None`` for mapped sources."""
    match trigger:
        case ScheduleTrigger():
            return PermissionStatement(
                sid=statement_id("events", trigger.rule_name),
                principal=EVENTS_PRINCIPAL,
                action=INVOKE_ACTION,
                source_arn=arn.rule_arn(trigger.rule_name),
            )
        case DynamoDBTrigger() | KinesisTrigger() | SQSTrigger():
            return None
        case SNSTrigger():
            return PermissionStatement(
                sid=statement_id("sns", trigger.topic_name),
                principal=SNS_PRINCIPAL,
                action=INVOKE_ACTION,
                source_arn=arn.topic_arn(trigger.topic_name),
            )
        case AlexaSkillsKitTrigger():
            return PermissionStatement(
                sid=statement_id("alexa", arn.region),
                principal=ALEXA_PRINCIPAL,
                action=INVOKE_ACTION,
            )
        case LexTrigger():
            return PermissionStatement(
                sid=statement_id("lex", arn.region, trigger.bot_name),
                principal=LEX_PRINCIPAL,
                action=INVOKE_ACTION,
                source_arn=arn.lex_intent_arn(trigger.bot_name),
            )
        case _:
            assert_never(trigger)


@dataclass
class _Run:
    """Mutable state shared by the triggers of one function."""

    spec: FunctionSpec
    arn: FunctionArn
    target_arn: str
    granted: set[tuple[str, str, str | None]]
    sids: set[str]
    stale_rules: frozenset[str] = frozenset()
    mappings: list[dict[str, Any]] | None = None
    subscribed_topics: set[str] | None = None
    outcomes: list[TriggerOutcome] = field(default_factory=list)

    @classmethod
    def start(cls, spec: FunctionSpec, function_arn: str, policy: Policy, **kwargs: Any) -> _Run:
        arn = FunctionArn.parse(function_arn)
        return cls(
            spec=spec,
            arn=arn,
            target_arn=arn.qualified(spec.qualifier),
            granted={s.key for s in policy.statements},
            sids={s.sid for s in policy.statements},
            **kwargs,
        )


class TriggerReconciler:
    """
    Brings the event sources of one function to their declared state.

    Example:
        reconciler = TriggerReconciler(clients)
        outcomes = reconciler.reconcile_triggers(spec, function_arn, policy, drift.stale_rules)
        swept = reconciler.cleanup_orphans(spec, function_arn, reader.get_policy(spec.name))
    """

    def __init__(self, clients: AwsClients, reader: RemoteStateReader | None = None) -> None:
        self._clients = clients
        self._lambda = clients.lambda_
        self._events = clients.events
        self._sns = clients.sns
        self._reader = reader or RemoteStateReader(clients)
        self._sources: dict[tuple[str, str], str] = {}

    # -------------------------------------------------------------------------
    # Reconcile
    # -------------------------------------------------------------------------

    def reconcile_triggers(
        self,
        spec: FunctionSpec,
        function_arn: str,
        policy: Policy,
        stale_rules: frozenset[str] = frozenset(),
    ) -> list[TriggerOutcome]:
        """Create or update every declared trigger.

        Args:
            spec: Function declaration
            function_arn: ARN of the deployed function
            policy: The function's current resource policy
            stale_rules: Rules that need to be written (see ``detect_drift``)

        Returns:
            One outcome per trigger, in reconciliation order. Resolution
            failures and provider errors are recorded as ``failed`` outcomes.
        """
        run = _Run.start(spec, function_arn, policy, stale_rules=stale_rules)

        for trigger in ordered_triggers(spec):
            kind = str(trigger.integration)
            try:
                outcome = self._reconcile(trigger, run)
            except (ResourceResolutionError, ClientError) as e:
                logger.error("%s trigger %s failed for %s: %s", kind, trigger.target, spec.name, e)
                outcome = TriggerOutcome(kind, trigger.target, "failed", error=str(e))
            run.outcomes.append(outcome)

        return run.outcomes

    def _reconcile(self, trigger: Trigger, run: _Run) -> TriggerOutcome:
        match trigger:
            case ScheduleTrigger():
                return self._reconcile_rule(trigger, run)
            case DynamoDBTrigger() | KinesisTrigger() | SQSTrigger():
                return self._reconcile_mapping(trigger, run)
            case SNSTrigger():
                return self._reconcile_topic(trigger, run)
            case AlexaSkillsKitTrigger() | LexTrigger():
                return self._reconcile_grant(trigger, run)
            case _:
                assert_never(trigger)

    def _reconcile_rule(self, trigger: ScheduleTrigger, run: _Run) -> TriggerOutcome:
        kind = str(trigger.integration)
        if trigger.rule_name not in run.stale_rules:
            self._ensure_permission(trigger, run)
            logger.info("Rule %s is up to date", trigger.rule_name)
            rule_arn = run.arn.rule_arn(trigger.rule_name)
            return TriggerOutcome(kind, trigger.rule_name, "skipped", arn=rule_arn)

        response = self._events.put_rule(
            Name=trigger.rule_name,
            ScheduleExpression=trigger.schedule_expression,
            Description=trigger.rule_description,
            State="ENABLED",
        )
        rule_arn = response.get("RuleArn") or run.arn.rule_arn(trigger.rule_name)
        logger.info("Rule %s set to %s", trigger.rule_name, trigger.schedule_expression)

        self._ensure_permission(trigger, run)

        target: dict[str, Any] = {"Id": RULE_TARGET_ID, "Arn": run.target_arn}
        if trigger.input is not None:
            target["Input"] = trigger.input
        self._events.put_targets(Rule=trigger.rule_name, Targets=[target])
        logger.info("Rule %s targets %s", trigger.rule_name, run.target_arn)

        return TriggerOutcome(kind, trigger.rule_name, "updated", arn=rule_arn)

    def _reconcile_mapping(self, trigger: MappedTrigger, run: _Run) -> TriggerOutcome:
        kind = str(trigger.integration)
        source_arn = self.resolve_source(trigger)

        if run.mappings is None:
            run.mappings = self._reader.list_mappings(run.target_arn)

        existing = next((m for m in run.mappings if m.get("EventSourceArn") == source_arn), None)
        if existing is not None:
            live_enabled = existing.get("State") not in ("Disabled", "Disabling")
            if existing.get("BatchSize") == trigger.batch_size and live_enabled == trigger.enabled:
                logger.info("Event source mapping for %s is up to date", trigger.target)
                return TriggerOutcome(kind, trigger.target, "skipped", arn=source_arn)

            self._lambda.update_event_source_mapping(
                UUID=existing["UUID"],
                FunctionName=run.target_arn,
                BatchSize=trigger.batch_size,
                Enabled=trigger.enabled,
            )
            existing["BatchSize"] = trigger.batch_size
            logger.info(
                "Updated event source mapping for %s (batch size %d)",
                trigger.target,
                trigger.batch_size,
            )
            return TriggerOutcome(kind, trigger.target, "updated", arn=source_arn)

        kwargs: dict[str, Any] = {
            "EventSourceArn": source_arn,
            "FunctionName": run.target_arn,
            "BatchSize": trigger.batch_size,
            "Enabled": trigger.enabled,
        }
        if not isinstance(trigger, SQSTrigger):
            kwargs["StartingPosition"] = trigger.starting_position
        response = self._lambda.create_event_source_mapping(**kwargs)
        run.mappings.append(
            {
                "UUID": response.get("UUID"),
                "EventSourceArn": source_arn,
                "BatchSize": trigger.batch_size,
            }
        )
        logger.info("Created event source mapping for %s", trigger.target)
        return TriggerOutcome(kind, trigger.target, "created", arn=source_arn)

    def _reconcile_topic(self, trigger: SNSTrigger, run: _Run) -> TriggerOutcome:
        kind = str(trigger.integration)
        topic_arn = self._sns.create_topic(Name=trigger.topic_name)["TopicArn"]

        if run.subscribed_topics is None:
            run.subscribed_topics = {
                s["TopicArn"] for s in self._reader.list_subscriptions(run.target_arn)
            }

        granted = self._ensure_permission(trigger, run, source_arn=topic_arn)
        if topic_arn in run.subscribed_topics:
            logger.info("%s is already subscribed to %s", run.spec.name, trigger.topic_name)
            action = "updated" if granted else "skipped"
            return TriggerOutcome(kind, trigger.topic_name, action, arn=topic_arn)

        self._sns.subscribe(TopicArn=topic_arn, Protocol="lambda", Endpoint=run.target_arn)
        run.subscribed_topics.add(topic_arn)
        logger.info("Subscribed %s to %s", run.spec.name, trigger.topic_name)
        return TriggerOutcome(kind, trigger.topic_name, "created", arn=topic_arn)

    def _reconcile_grant(
        self, trigger: AlexaSkillsKitTrigger | LexTrigger, run: _Run
    ) -> TriggerOutcome:
        kind = str(trigger.integration)
        granted = self._ensure_permission(trigger, run)
        if not granted:
            logger.info("%s permission for %s is up to date", kind, run.spec.name)
        return TriggerOutcome(kind, trigger.target, "created" if granted else "skipped")

    def _ensure_permission(
        self, trigger: Trigger, run: _Run, source_arn: str | None = None
    ) -> bool:
        """Grant the invoke permission ``trigger`` needs unless the policy allows it.

        Returns:
            True if a statement was added
        """
        statement = permission_for(trigger, run.arn)
        if statement is None:
            return False
        if source_arn is not None:
            statement = PermissionStatement(
                statement.sid, statement.principal, statement.action, source_arn
            )
        if statement.key in run.granted:
            return False

        if statement.sid in run.sids:
            # Same id, different grant: replace it
            self._remove_permission(run.spec, statement.sid)

        kwargs: dict[str, Any] = {
            "FunctionName": run.spec.name,
            "StatementId": statement.sid,
            "Action": statement.action,
            "Principal": statement.principal,
        }
        if statement.source_arn:
            kwargs["SourceArn"] = statement.source_arn
        if run.spec.qualifier:
            kwargs["Qualifier"] = run.spec.qualifier
        self._lambda.add_permission(**kwargs)

        run.granted.add(statement.key)
        run.sids.add(statement.sid)
        logger.info("Granted %s invoke permission on %s", statement.principal, run.spec.name)
        return True

    def _remove_permission(self, spec: FunctionSpec, sid: str) -> None:
        kwargs: dict[str, Any] = {"FunctionName": spec.name, "StatementId": sid}
        if spec.qualifier:
            kwargs["Qualifier"] = spec.qualifier
        self._lambda.remove_permission(**kwargs)

    # -------------------------------------------------------------------------
    # Source resolution
    # -------------------------------------------------------------------------

    def resolve_source(self, trigger: MappedTrigger) -> str:
        """Resolve a table, stream or queue name to the ARN mappings use.

        Raises:
            ResourceResolutionError: If the resource does not exist or has no
                stream enabled
        """
        cache_key = (str(trigger.integration), trigger.target)
        if cache_key in self._sources:
            return self._sources[cache_key]

        match trigger:
            case DynamoDBTrigger():
                arn = self._resolve_table_stream(trigger.table_name)
            case KinesisTrigger():
                arn = self._resolve_stream(trigger.stream_name)
            case SQSTrigger():
                arn = self._resolve_queue(trigger.queue_name)
            case _:
                assert_never(trigger)

        logger.debug("Resolved %s %s to %s", trigger.integration, trigger.target, arn)
        self._sources[cache_key] = arn
        return arn

    def _resolve_table_stream(self, table_name: str) -> str:
        try:
            table = self._clients.dynamodb.describe_table(TableName=table_name)["Table"]
        except ClientError as e:
            if is_not_found(e):
                raise ResourceResolutionError(
                    "DynamoDB table", table_name, "table not found"
                ) from e
            raise
        # LatestStreamArn outlives a disabled stream
        stream_arn = table.get("LatestStreamArn")
        enabled = table.get("StreamSpecification", {}).get("StreamEnabled", False)
        if not stream_arn or not enabled:
            raise ResourceResolutionError("DynamoDB table", table_name, "streams are not enabled")
        return str(stream_arn)

    def _resolve_stream(self, stream_name: str) -> str:
        try:
            response = self._clients.kinesis.describe_stream_summary(StreamName=stream_name)
        except ClientError as e:
            if is_not_found(e):
                raise ResourceResolutionError(
                    "Kinesis stream", stream_name, "stream not found"
                ) from e
            raise
        return str(response["StreamDescriptionSummary"]["StreamARN"])

    def _resolve_queue(self, queue_name: str) -> str:
        sqs = self._clients.sqs
        try:
            queue_url = sqs.get_queue_url(QueueName=queue_name)["QueueUrl"]
            attributes = sqs.get_queue_attributes(QueueUrl=queue_url, AttributeNames=["QueueArn"])
        except ClientError as e:
            if is_not_found(e):
                raise ResourceResolutionError("SQS queue", queue_name, "queue not found") from e
            raise
        return str(attributes["Attributes"]["QueueArn"])

    # -------------------------------------------------------------------------
    # Orphans
    # -------------------------------------------------------------------------

    def cleanup_orphans(self, spec: FunctionSpec, function_arn: str, policy: Policy) -> SweepResult:
        """Remove live triggers of the function that are no longer declared.

        Covers rule bindings, event source mappings, SNS subscriptions and
        invoke grants to managed principals. Running it twice with the same
        declaration removes nothing the second time.
        """
        arn = FunctionArn.parse(function_arn)
        target_arn = arn.qualified(spec.qualifier)
        triggers = ordered_triggers(spec)
        result = SweepResult()

        rules = OrphanSweep(
            kind="rule",
            list_live=lambda: self._reader.list_bound_rules(target_arn),
            identity=lambda name: name,
            delete_one=lambda name: self._unbind_rule(name, target_arn),
        )
        result.extend(rules.run({t.rule_name for t in spec.scheduled_rules}))

        declared_sources = self._declared_sources(spec)
        if declared_sources is None:
            logger.warning(
                "Skipping event source mapping cleanup for %s: unresolved declared source",
                spec.name,
            )
        else:
            mappings = OrphanSweep(
                kind="event source mapping",
                list_live=lambda: self._reader.list_mappings(target_arn),
                identity=lambda m: m.get("EventSourceArn"),
                delete_one=lambda m: self._lambda.delete_event_source_mapping(UUID=m["UUID"]),
                describe=lambda m: str(m.get("EventSourceArn")),
            )
            result.extend(mappings.run(declared_sources))

        subscriptions = OrphanSweep(
            kind="subscription",
            list_live=lambda: self._reader.list_subscriptions(target_arn),
            identity=lambda s: s.get("TopicArn"),
            delete_one=lambda s: self._sns.unsubscribe(SubscriptionArn=s["SubscriptionArn"]),
            describe=lambda s: str(s.get("TopicArn")),
        )
        result.extend(
            subscriptions.run({arn.topic_arn(t.topic_name) for t in spec.triggers_of(SNSTrigger)})
        )

        declared_grants = {p.key for t in triggers if (p := permission_for(t, arn)) is not None}
        grants = OrphanSweep(
            kind="permission",
            list_live=policy.managed,
            identity=lambda s: s.key,
            delete_one=lambda s: self._remove_permission(spec, s.sid),
            describe=lambda s: s.sid,
        )
        result.extend(grants.run(declared_grants))

        return result

    def _declared_sources(self, spec: FunctionSpec) -> set[str] | None:
        sources = set()
        for trigger in spec.triggers_of(DynamoDBTrigger, KinesisTrigger, SQSTrigger):
            try:
                sources.add(self.resolve_source(trigger))  # type: ignore[arg-type]
            except (ResourceResolutionError, ClientError) as e:
                logger.debug("Source %s unresolved: %s", trigger.target, e)
                return None
        return sources

    def _unbind_rule(self, rule_name: str, target_arn: str) -> None:
        """Detach ``target_arn`` from a rule, deleting the rule once it has no targets."""
        targets = self._reader.list_rule_targets(rule_name)
        ids = [t["Id"] for t in targets if t.get("Arn") == target_arn]
        if ids:
            self._events.remove_targets(Rule=rule_name, Ids=ids)
        if len(targets) == len(ids):
            self._events.delete_rule(Name=rule_name)
            logger.info("Deleted rule %s", rule_name)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def teardown(self, spec: FunctionSpec, trigger: Trigger, function_arn: str) -> None:
        """Remove one declared trigger ahead of deleting its function.

        Resources that are already gone are ignored. SNS topics themselves
        are left in place; only the subscription is removed.
        """
        arn = FunctionArn.parse(function_arn)
        target_arn = arn.qualified(spec.qualifier)

        match trigger:
            case ScheduleTrigger():
                self._ignore_missing(self._unbind_rule, trigger.rule_name, target_arn)
            case DynamoDBTrigger() | KinesisTrigger() | SQSTrigger():
                source_arn = self.resolve_source(trigger)
                for mapping in self._reader.list_mappings(target_arn):
                    if mapping.get("EventSourceArn") == source_arn:
                        self._ignore_missing(
                            self._lambda.delete_event_source_mapping, UUID=mapping["UUID"]
                        )
                        logger.info("Deleted event source mapping for %s", trigger.target)
            case SNSTrigger():
                topic_arn = arn.topic_arn(trigger.topic_name)
                for sub in self._reader.list_subscriptions(target_arn):
                    if sub.get("TopicArn") == topic_arn:
                        self._sns.unsubscribe(SubscriptionArn=sub["SubscriptionArn"])
                        logger.info("Unsubscribed %s from %s", spec.name, trigger.topic_name)
            case AlexaSkillsKitTrigger() | LexTrigger():
                pass
            case _:
                assert_never(trigger)

        statement = permission_for(trigger, arn)
        if statement is not None:
            self._ignore_missing(self._remove_permission, spec, statement.sid)

    @staticmethod
    def _ignore_missing(call: Any, *args: Any, **kwargs: Any) -> None:
        try:
            call(*args, **kwargs)
        except ClientError as e:
            if not is_not_found(e):
                raise
