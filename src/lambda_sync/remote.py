"""Read the live state of a function and its event sources.

Every method issues fresh requests; nothing here is cached between calls.
A missing function is reported as ``None`` rather than as an exception.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from botocore.exceptions import ClientError

from .exceptions import is_not_found
from .manifest import FunctionSpec
from .models import Policy, RemoteFunctionState, RuleState
from .naming import FunctionArn

if TYPE_CHECKING:
    from .clients import AwsClients

logger = logging.getLogger(__name__)


class RemoteStateReader:
    """Fetches remote function configuration, policy, aliases and triggers."""

    def __init__(self, clients: AwsClients) -> None:
        self._lambda = clients.lambda_
        self._events = clients.events
        self._sns = clients.sns
        self._sts = clients.sts
        self._region = clients.region

    def read(self, spec: FunctionSpec) -> RemoteFunctionState | None:
        """Snapshot the function declared by ``spec``, or ``None`` if it does not exist."""
        try:
            response = self._lambda.get_function(FunctionName=spec.name)
        except ClientError as e:
            if is_not_found(e):
                logger.debug("Function %s not found", spec.name)
                return None
            raise

        configuration = response["Configuration"]
        arn = FunctionArn.parse(configuration["FunctionArn"])
        target_arn = arn.qualified(spec.qualifier)

        return RemoteFunctionState.from_configuration(
            configuration,
            aliases=self.list_aliases(spec.name),
            policy=self.get_policy(spec.name, spec.qualifier),
            rules=self.read_rules(spec, target_arn),
        )

    def function_arn(self, function_name: str) -> str | None:
        try:
            response = self._lambda.get_function(FunctionName=function_name)
        except ClientError as e:
            if is_not_found(e):
                return None
            raise
        return str(response["Configuration"]["FunctionArn"])

    def expected_function_arn(self, function_name: str) -> str:
        """ARN ``function_name`` has, or had, in the caller's account and region."""
        identity = self._sts.get_caller_identity()
        partition = str(identity["Arn"]).split(":")[1]
        arn = FunctionArn(partition, self._region, str(identity["Account"]), function_name)
        return arn.unqualified

    def list_aliases(self, function_name: str) -> list[str]:
        names: list[str] = []
        kwargs: dict[str, Any] = {"FunctionName": function_name}
        while True:
            try:
                response = self._lambda.list_aliases(**kwargs)
            except ClientError as e:
                if is_not_found(e):
                    return names
                raise
            names.extend(a["Name"] for a in response.get("Aliases", []))
            marker = response.get("NextMarker")
            if not marker:
                return names
            kwargs["Marker"] = marker

    def get_policy(self, function_name: str, qualifier: str | None = None) -> Policy:
        """The function's resource policy; empty when none has been attached yet."""
        kwargs: dict[str, Any] = {"FunctionName": function_name}
        if qualifier:
            kwargs["Qualifier"] = qualifier
        try:
            response = self._lambda.get_policy(**kwargs)
        except ClientError as e:
            if is_not_found(e):
                return Policy()
            raise
        return Policy.from_json(response.get("Policy"))

    # -------------------------------------------------------------------------
    # Scheduled rules
    # -------------------------------------------------------------------------

    def read_rules(self, spec: FunctionSpec, target_arn: str | None) -> dict[str, RuleState]:
        """Describe every rule ``spec`` declares, keep-alive included.

        Args:
            spec: Function declaration
            target_arn: ARN the rules should target, or ``None`` when the
                function does not exist yet
        """
        bound = set(self.list_bound_rules(target_arn)) if target_arn else set()
        rules: dict[str, RuleState] = {}
        for trigger in spec.scheduled_rules:
            rules[trigger.rule_name] = self.describe_rule(
                trigger.rule_name, targets_function=trigger.rule_name in bound
            )
        return rules

    def describe_rule(self, rule_name: str, targets_function: bool = False) -> RuleState:
        try:
            response = self._events.describe_rule(Name=rule_name)
        except ClientError as e:
            if is_not_found(e):
                return RuleState(name=rule_name)
            raise
        return RuleState(
            name=rule_name,
            arn=response.get("Arn"),
            schedule_expression=response.get("ScheduleExpression"),
            description=response.get("Description", ""),
            targets_function=targets_function,
        )

    def list_bound_rules(self, target_arn: str) -> list[str]:
        """Names of rules with a target pointing at ``target_arn``."""
        names: list[str] = []
        kwargs: dict[str, Any] = {"TargetArn": target_arn}
        while True:
            response = self._events.list_rule_names_by_target(**kwargs)
            names.extend(response.get("RuleNames", []))
            token = response.get("NextToken")
            if not token:
                return names
            kwargs["NextToken"] = token

    def list_rule_targets(self, rule_name: str) -> list[dict[str, Any]]:
        targets: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {"Rule": rule_name}
        while True:
            response = self._events.list_targets_by_rule(**kwargs)
            targets.extend(response.get("Targets", []))
            token = response.get("NextToken")
            if not token:
                return targets
            kwargs["NextToken"] = token

    # -------------------------------------------------------------------------
    # Event source mappings and subscriptions
    # -------------------------------------------------------------------------

    def list_mappings(self, target_arn: str) -> list[dict[str, Any]]:
        """Event source mappings attached to ``target_arn``."""
        return list(self._iter_mappings(target_arn))

    def _iter_mappings(self, target_arn: str) -> Iterator[dict[str, Any]]:
        kwargs: dict[str, Any] = {"FunctionName": target_arn}
        while True:
            response = self._lambda.list_event_source_mappings(**kwargs)
            yield from response.get("EventSourceMappings", [])
            marker = response.get("NextMarker")
            if not marker:
                return
            kwargs["Marker"] = marker

    def list_subscriptions(self, target_arn: str) -> list[dict[str, Any]]:
        """Confirmed ``lambda``-protocol SNS subscriptions delivering to ``target_arn``."""
        subscriptions: list[dict[str, Any]] = []
        kwargs: dict[str, Any] = {}
        while True:
            response = self._sns.list_subscriptions(**kwargs)
            for sub in response.get("Subscriptions", []):
                if sub.get("Protocol") != "lambda" or sub.get("Endpoint") != target_arn:
                    continue
                if not str(sub.get("SubscriptionArn", "")).startswith("arn:"):
                    continue  # PendingConfirmation/Deleted
                subscriptions.append(sub)
            token = response.get("NextToken")
            if not token:
                return subscriptions
            kwargs["NextToken"] = token
