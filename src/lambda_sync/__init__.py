"""
lambda-sync: Declarative deployment of AWS Lambda functions and their triggers.

This library reconciles a declared set of functions against a live account:
- Creates missing functions, updates drifted ones, skips the rest
- Points aliases at the newly published version
- Wires scheduled rules, DynamoDB/Kinesis streams, SQS queues, SNS topics,
  Alexa Skills Kit and Lex permissions
- Removes triggers that are no longer declared

Example:
    from lambda_sync import Deployer, DeployOptions, load_config

    options = DeployOptions.from_dict(load_config("lambda-sync.yaml"), region="eu-west-1")
    report = Deployer(options).deploy()
    for result in report.functions:
        print(result.function_name, result.action)
"""

from importlib.metadata import PackageNotFoundError, version

from .config import DeployOptions, load_config
from .deployer import Deployer
from .differ import Drift, detect_drift, is_changed
from .exceptions import (
    ArtifactError,
    ConfigurationError,
    CredentialsError,
    LambdaSyncError,
    ResourceResolutionError,
    UnknownIntegrationError,
)
from .manifest import FunctionSpec, Integration, parse_trigger
from .models import FunctionResult, PlanEntry, RunReport, TriggerOutcome

try:
    __version__ = version("lambda-sync")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Main classes
    "Deployer",
    "DeployOptions",
    "load_config",
    # Declarations
    "FunctionSpec",
    "Integration",
    "parse_trigger",
    # Drift
    "Drift",
    "detect_drift",
    "is_changed",
    # Results
    "FunctionResult",
    "PlanEntry",
    "RunReport",
    "TriggerOutcome",
    # Exceptions
    "LambdaSyncError",
    "ConfigurationError",
    "UnknownIntegrationError",
    "ResourceResolutionError",
    "CredentialsError",
    "ArtifactError",
]
