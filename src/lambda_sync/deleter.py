"""Removal of declared functions and their triggers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from botocore.exceptions import ClientError

from .exceptions import LambdaSyncError, is_not_found
from .manifest import FunctionSpec, Trigger
from .models import FunctionResult
from .remote import RemoteStateReader
from .triggers import TriggerReconciler, ordered_triggers

if TYPE_CHECKING:
    from .clients import AwsClients

logger = logging.getLogger(__name__)


class DeletionReconciler:
    """Tears down a function's triggers best-effort, then deletes the function."""

    def __init__(
        self,
        clients: AwsClients,
        reader: RemoteStateReader | None = None,
        triggers: TriggerReconciler | None = None,
    ) -> None:
        self._lambda = clients.lambda_
        self._reader = reader or RemoteStateReader(clients)
        self._triggers = triggers or TriggerReconciler(clients, self._reader)

    def delete(self, spec: FunctionSpec) -> FunctionResult:
        """Delete ``spec``'s function after tearing down its declared triggers.

        When the function is already gone, triggers it left behind are still
        removed and the result is ``not_found``.
        """
        result = FunctionResult(function_name=spec.name)
        function_arn = self._reader.function_arn(spec.name)
        if function_arn is None:
            logger.info("Function %s does not exist. Removing leftover triggers", spec.name)
            result.action = "not_found"
            try:
                leftover_arn = self._reader.expected_function_arn(spec.name)
            except ClientError as e:
                logger.warning("Unable to derive the ARN of %s: %s", spec.name, e)
                result.errors.append(f"leftover triggers not removed: {e}")
                return result
            self._teardown(spec, leftover_arn, result)
            return result
        result.function_arn = function_arn

        self._teardown(spec, function_arn, result)

        try:
            self._lambda.delete_function(FunctionName=spec.name)
        except ClientError as e:
            if not is_not_found(e):
                raise
        logger.info("Deleted function %s", spec.name)
        result.action = "deleted"
        return result

    def _teardown(self, spec: FunctionSpec, function_arn: str, result: FunctionResult) -> None:
        for trigger in ordered_triggers(spec):
            try:
                self._triggers.teardown(spec, trigger, function_arn)
            except ClientError as e:
                if is_not_found(e):
                    logger.debug("%s trigger %s already gone", trigger.integration, trigger.target)
                    continue
                self._record_failure(trigger, e, result)
            except LambdaSyncError as e:
                self._record_failure(trigger, e, result)

    @staticmethod
    def _record_failure(trigger: Trigger, error: Exception, result: FunctionResult) -> None:
        logger.warning(
            "Failed to remove %s trigger %s: %s", trigger.integration, trigger.target, error
        )
        result.errors.append(f"{trigger.integration} {trigger.target}: {error}")
