"""Run-level orchestration of deploy, delete, update-code and plan.

Shared setup (configuration, credentials, artifact upload) happens once and
aborts the run when it fails. Each function is then processed inside its
own error boundary so one failing function never stops the others.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from botocore.exceptions import BotoCoreError, ClientError

from .artifact import ArtifactPublisher
from .clients import AwsClients
from .config import DeployOptions
from .deleter import DeletionReconciler
from .differ import detect_drift
from .encryption import KmsEncryptor
from .exceptions import ConfigurationError, LambdaSyncError
from .manifest import FunctionSpec
from .models import ArtifactLocation, FunctionResult, PlanEntry, RunReport
from .reconciler import FunctionReconciler
from .remote import RemoteStateReader

logger = logging.getLogger(__name__)

# One slot per declaration: a normalized spec or the failure that prevented it
Declared = FunctionSpec | FunctionResult


class Deployer:
    """
    Entry point for every run.

    Example:
        options = DeployOptions.from_dict(load_config("lambda-sync.yaml"))
        report = Deployer(options).deploy()
        if not report.ok:
            sys.exit(1)

    Args:
        options: Plugin-wide settings and function declarations
        clients: Prebuilt AWS clients (built from ``options`` when omitted)
    """

    def __init__(self, options: DeployOptions, clients: AwsClients | None = None) -> None:
        self.options = options
        self.clients = clients or AwsClients.from_options(options)
        self.reader = RemoteStateReader(self.clients)
        self.publisher = ArtifactPublisher(
            self.clients.s3,
            options.s3_bucket,
            prefix=options.s3_prefix,
            region=self.clients.region,
        )

    # -------------------------------------------------------------------------
    # Runs
    # -------------------------------------------------------------------------

    def deploy(self) -> RunReport:
        declared = self.normalize()
        location = self._upload()
        reconciler = FunctionReconciler(
            self.clients, location, force_update=self.options.force_update, reader=self.reader
        )
        return self._run(declared, reconciler.deploy)

    def update_code(self) -> RunReport:
        declared = self.normalize()
        location = self._upload()
        reconciler = FunctionReconciler(self.clients, location, reader=self.reader)
        return self._run(declared, reconciler.update_code)

    def delete(self) -> RunReport:
        declared = self.normalize()
        reconciler = DeletionReconciler(self.clients, reader=self.reader)
        report = self._run(declared, reconciler.delete)

        if self.options.function_code:
            location = self.publisher.location_for(self.options.function_code)
            try:
                self.publisher.delete(location)
            except ClientError as e:
                logger.warning("Unable to remove %s: %s", location.uri, e)
        return report

    def plan(self) -> list[PlanEntry]:
        """Report what ``deploy`` would do without changing anything."""
        entries: list[PlanEntry] = []
        for item in self.normalize():
            if isinstance(item, FunctionResult):
                entries.append(PlanEntry(item.function_name, "failed", tuple(item.errors)))
                continue
            try:
                remote = self.reader.read(item)
            except ClientError as e:
                logger.error("Unable to read %s: %s", item.name, e)
                entries.append(PlanEntry(item.name, "failed", (str(e),)))
                continue
            if remote is None:
                entries.append(PlanEntry(item.name, "create"))
                continue
            drift = detect_drift(item, remote, self.options.force_update)
            action = "update" if drift.changed else "skip"
            entries.append(PlanEntry(item.name, action, drift.reasons))
        return entries

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def normalize(self) -> list[Declared]:
        """Normalize every declaration, isolating per-function configuration errors.

        Raises:
            ConfigurationError: If the declarations as a whole are unusable
                or pass-through variables cannot be encrypted
        """
        encrypted_env: dict[str, str] = {}
        if self.options.encrypted_pass_through:
            assert self.options.kms_encryption_key_arn is not None
            encryptor = KmsEncryptor(self.clients.kms, self.options.kms_encryption_key_arn)
            encrypted_env = encryptor.encrypt_all(self.options.encrypted_pass_through)

        declared: list[Declared] = []
        for index, raw in enumerate(self.options.declarations()):
            try:
                declared.append(FunctionSpec.from_dict(raw, self.options, encrypted_env))
            except ConfigurationError as e:
                fallback = f"lambdaFunctions[{index}]"
                name = e.function_name or str(raw.get("functionName") or fallback)
                logger.error("%s", e)
                declared.append(
                    FunctionResult(function_name=name, action="failed", errors=[str(e)])
                )
        return declared

    def _upload(self) -> ArtifactLocation:
        if not self.options.function_code:
            raise ConfigurationError("'functionCode' is required", field="functionCode")
        return self.publisher.ensure_uploaded(self.options.function_code)

    def _run(
        self, declared: list[Declared], operation: Callable[[FunctionSpec], FunctionResult]
    ) -> RunReport:
        report = RunReport()
        for item in declared:
            if isinstance(item, FunctionResult):
                report.functions.append(item)
                continue
            try:
                result = operation(item)
            except (LambdaSyncError, ClientError, BotoCoreError) as e:
                logger.error("Function %s failed: %s", item.name, e)
                result = FunctionResult(function_name=item.name, action="failed", errors=[str(e)])
            report.functions.append(result)
        return report
