"""Create-or-update reconciliation of a single function.

Per function there are two states. An absent function is created; a
present one is updated when drift is detected (or forced) and skipped
otherwise. Aliases follow a create or update, then triggers are
reconciled and orphans swept regardless of whether the function changed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from botocore.exceptions import ClientError

from .differ import detect_drift
from .exceptions import is_not_found
from .manifest import FunctionSpec
from .models import ArtifactLocation, FunctionResult, Policy, RemoteFunctionState
from .remote import RemoteStateReader
from .triggers import TriggerReconciler

if TYPE_CHECKING:
    from .clients import AwsClients

logger = logging.getLogger(__name__)

LATEST = "$LATEST"


class FunctionReconciler:
    """
    Converges one declared function onto the live account.

    Remote create and update errors are not retried here; they propagate
    to the caller's per-function error boundary.

    Attributes:
        artifact: Staged code location used for create and code updates
        force_update: Update even when no drift is detected
    """

    def __init__(
        self,
        clients: AwsClients,
        artifact: ArtifactLocation,
        force_update: bool = False,
        reader: RemoteStateReader | None = None,
        triggers: TriggerReconciler | None = None,
    ) -> None:
        self._lambda = clients.lambda_
        self.artifact = artifact
        self.force_update = force_update
        self._reader = reader or RemoteStateReader(clients)
        self._triggers = triggers or TriggerReconciler(clients, self._reader)

    def deploy(self, spec: FunctionSpec) -> FunctionResult:
        """Create or update ``spec``, then its aliases, triggers and orphans."""
        result = FunctionResult(function_name=spec.name)
        remote = self._reader.read(spec)

        if remote is None:
            response = self._create(spec)
            result.action = "created"
            result.version = response.get("Version", LATEST)
            result.function_arn = response["FunctionArn"]
            policy = Policy()
            stale = frozenset(t.rule_name for t in spec.scheduled_rules)
            self._reconcile_aliases(spec, result.version)
        else:
            drift = detect_drift(spec, remote, self.force_update)
            result.function_arn = remote.function_arn
            policy = remote.policy
            stale = drift.stale_rules
            if drift.changed:
                logger.info("Updating %s: %s", spec.name, ", ".join(drift.reasons))
                result.version = self._update(spec, remote)
                result.action = "updated"
                self._reconcile_aliases(spec, result.version)
            else:
                logger.info("Function %s is up to date. Skipping update", spec.name)
                result.version = remote.version
                result.action = "skipped"

        assert result.function_arn is not None
        result.triggers = self._triggers.reconcile_triggers(
            spec, result.function_arn, policy, stale
        )
        result.errors.extend(
            f"{t.kind} {t.target}: {t.error}" for t in result.triggers if t.action == "failed"
        )

        fresh_policy = self._reader.get_policy(spec.name, spec.qualifier)
        swept = self._triggers.cleanup_orphans(spec, result.function_arn, fresh_policy)
        result.orphans_removed = swept.removed
        result.errors.extend(swept.errors)
        return result

    def update_code(self, spec: FunctionSpec) -> FunctionResult:
        """Push the staged artifact to an existing function without touching anything else."""
        result = FunctionResult(function_name=spec.name)
        function_arn = self._reader.function_arn(spec.name)
        if function_arn is None:
            logger.warning("Function %s does not exist. Skipping code update", spec.name)
            result.action = "not_found"
            return result

        response = self._update_code(spec)
        result.function_arn = function_arn
        result.version = response.get("Version", LATEST)
        result.action = "updated"
        return result

    # -------------------------------------------------------------------------
    # Lambda calls
    # -------------------------------------------------------------------------

    def _create(self, spec: FunctionSpec) -> dict[str, Any]:
        logger.info("Creating function %s", spec.name)
        response: dict[str, Any] = self._lambda.create_function(
            FunctionName=spec.name,
            Runtime=spec.runtime,
            Role=spec.role_arn,
            Handler=spec.handler,
            Code=self.artifact.as_code(),
            Description=spec.description,
            Timeout=spec.timeout,
            MemorySize=spec.memory_size,
            VpcConfig=spec.vpc_config(),
            Environment={"Variables": dict(spec.environment_variables)},
            Publish=spec.publish,
        )
        self._wait("function_active_v2", spec.name)
        logger.info("Created function %s (version %s)", spec.name, response.get("Version"))
        return response

    def _update(self, spec: FunctionSpec, remote: RemoteFunctionState) -> str:
        """Update code then configuration; returns the version the code update produced."""
        response = self._update_code(spec)
        version = str(response.get("Version", LATEST))

        # Variables set outside the declaration are kept unless redeclared
        environment = {**remote.environment_variables, **spec.environment_variables}
        self._lambda.update_function_configuration(
            FunctionName=spec.name,
            Role=spec.role_arn,
            Handler=spec.handler,
            Description=spec.description,
            Timeout=spec.timeout,
            MemorySize=spec.memory_size,
            VpcConfig=spec.vpc_config(),
            Environment={"Variables": environment},
            Runtime=spec.runtime,
        )
        self._wait("function_updated_v2", spec.name)
        logger.info("Updated configuration of %s", spec.name)
        return version

    def _update_code(self, spec: FunctionSpec) -> dict[str, Any]:
        logger.info("Updating code of %s from %s", spec.name, self.artifact.uri)
        response: dict[str, Any] = self._lambda.update_function_code(
            FunctionName=spec.name,
            S3Bucket=self.artifact.bucket,
            S3Key=self.artifact.key,
            Publish=spec.publish,
        )
        self._wait("function_updated_v2", spec.name)
        return response

    def _wait(self, waiter_name: str, function_name: str) -> None:
        logger.debug("Waiting for %s on %s", waiter_name, function_name)
        self._lambda.get_waiter(waiter_name).wait(FunctionName=function_name)

    def _reconcile_aliases(self, spec: FunctionSpec, version: str | None) -> None:
        """Point every declared alias at ``version``, creating missing ones."""
        version = version or LATEST
        for alias in spec.aliases:
            try:
                self._lambda.update_alias(
                    FunctionName=spec.name, Name=alias, FunctionVersion=version
                )
                logger.info("Alias %s of %s now points to version %s", alias, spec.name, version)
            except ClientError as e:
                if not is_not_found(e):
                    raise
                self._lambda.create_alias(
                    FunctionName=spec.name, Name=alias, FunctionVersion=version
                )
                logger.info("Created alias %s of %s for version %s", alias, spec.name, version)
