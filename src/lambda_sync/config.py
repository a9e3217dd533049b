"""Plugin-wide configuration for lambda-sync.

Configuration is read from a YAML (or JSON) document whose keys follow the
camelCase names used by the declarative function format, then overridden
by command-line options.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError
from .naming import normalize_version

logger = logging.getLogger(__name__)

DEFAULT_REGION = "us-east-1"
DEFAULT_BUCKET = "lambda-function-code"
DEFAULT_RUNTIME = "python3.12"
DEFAULT_TIMEOUT = 30
DEFAULT_MEMORY_SIZE = 1024

# config key -> DeployOptions attribute
_KEY_MAP = {
    "functionCode": "function_code",
    "version": "version",
    "region": "region",
    "profile": "profile",
    "accessKey": "access_key",
    "secretKey": "secret_key",
    "endpointUrl": "endpoint_url",
    "s3Bucket": "s3_bucket",
    "s3Prefix": "s3_prefix",
    "runtime": "runtime",
    "lambdaRoleArn": "lambda_role_arn",
    "timeout": "timeout",
    "memorySize": "memory_size",
    "vpcSecurityGroupIds": "vpc_security_group_ids",
    "vpcSubnetIds": "vpc_subnet_ids",
    "publish": "publish",
    "functionNameSuffix": "function_name_suffix",
    "forceUpdate": "force_update",
    "environmentVariables": "environment_variables",
    "passThrough": "pass_through",
    "encryptedPassThrough": "encrypted_pass_through",
    "kmsEncryptionKeyArn": "kms_encryption_key_arn",
    "lambdaFunctions": "functions",
    "lambdaFunctionsJSON": "functions_json",
}


@dataclass(frozen=True)
class DeployOptions:
    """
    Plugin-wide settings shared by every function in a run.

    Per-function declarations fall back to these values for timeout,
    memory size, runtime, role and network placement.

    Attributes:
        function_code: Local path of the deployable artifact
        version: Build version, normalized to an alias-safe form
        region: AWS region
        profile: Named AWS profile (default: boto3 credential chain)
        access_key: Explicit access key (paired with secret_key)
        secret_key: Explicit secret key
        endpoint_url: Alternate endpoint (e.g., LocalStack)
        s3_bucket: Bucket the artifact is staged in
        s3_prefix: Key prefix for the staged artifact
        runtime: Default Lambda runtime
        lambda_role_arn: Default execution role ARN
        timeout: Default timeout in seconds
        memory_size: Default memory size in MB
        vpc_security_group_ids: Default security groups
        vpc_subnet_ids: Default subnets
        publish: Publish a version on create/update
        function_name_suffix: Suffix appended to function, rule, topic and table names
        force_update: Update code and configuration even without drift
        environment_variables: Plugin-wide environment variables
        pass_through: Variables passed through from the command line
        encrypted_pass_through: Variables encrypted with KMS before deployment
        kms_encryption_key_arn: KMS key for encrypted_pass_through
        functions: Structured function declarations
        functions_json: Serialized function declarations (wins over ``functions``)
    """

    function_code: str | None = None
    version: str = ""
    region: str = DEFAULT_REGION
    profile: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    endpoint_url: str | None = None
    s3_bucket: str = DEFAULT_BUCKET
    s3_prefix: str = ""
    runtime: str = DEFAULT_RUNTIME
    lambda_role_arn: str | None = None
    timeout: int = DEFAULT_TIMEOUT
    memory_size: int = DEFAULT_MEMORY_SIZE
    vpc_security_group_ids: tuple[str, ...] = ()
    vpc_subnet_ids: tuple[str, ...] = ()
    publish: bool = True
    function_name_suffix: str | None = None
    force_update: bool = False
    environment_variables: dict[str, str] = field(default_factory=dict)
    pass_through: dict[str, str] = field(default_factory=dict)
    encrypted_pass_through: dict[str, str] = field(default_factory=dict)
    kms_encryption_key_arn: str | None = None
    functions: tuple[dict[str, Any], ...] = ()
    functions_json: str | None = None

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive", field="timeout")
        if self.memory_size <= 0:
            raise ConfigurationError("memorySize must be positive", field="memorySize")
        if self.encrypted_pass_through and not self.kms_encryption_key_arn:
            raise ConfigurationError(
                "kmsEncryptionKeyArn is required when encryptedPassThrough is set",
                field="kmsEncryptionKeyArn",
            )
        if bool(self.access_key) != bool(self.secret_key):
            raise ConfigurationError(
                "accessKey and secretKey must be provided together", field="accessKey"
            )

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], **overrides: Any) -> DeployOptions:
        """Build options from a configuration document plus CLI overrides.

        Overrides use attribute names and are ignored when ``None`` so that
        unset command-line flags never mask configured values.
        """
        unknown = sorted(set(d) - set(_KEY_MAP))
        if unknown:
            logger.warning("Ignoring unknown configuration keys: %s", ", ".join(unknown))

        values: dict[str, Any] = {_KEY_MAP[k]: v for k, v in d.items() if k in _KEY_MAP}
        values.update({k: v for k, v in overrides.items() if v is not None})

        known = {f.name for f in fields(cls)}
        bad = sorted(set(values) - known)
        if bad:
            raise ConfigurationError(f"unknown option(s): {', '.join(bad)}")

        for key in ("vpc_security_group_ids", "vpc_subnet_ids"):
            if key in values:
                values[key] = tuple(values[key] or ())
        for key in ("environment_variables", "pass_through", "encrypted_pass_through"):
            if key in values:
                values[key] = {str(k): str(v) for k, v in (values[key] or {}).items()}
        if "functions" in values:
            values["functions"] = tuple(values["functions"] or ())
        if values.get("version") is not None:
            values["version"] = normalize_version(str(values["version"]))
        for key in ("timeout", "memory_size"):
            if key in values:
                try:
                    values[key] = int(values[key])
                except (TypeError, ValueError):
                    raise ConfigurationError(f"{key} must be an integer", field=key) from None

        return cls(**values)

    def with_overrides(self, **overrides: Any) -> DeployOptions:
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def declarations(self) -> list[dict[str, Any]]:
        """Raw function declarations, from ``lambdaFunctionsJSON`` when set.

        Raises:
            ConfigurationError: If the JSON is invalid or no function is declared
        """
        if self.functions_json:
            try:
                parsed = json.loads(self.functions_json)
            except json.JSONDecodeError as e:
                raise ConfigurationError(
                    f"lambdaFunctionsJSON is not valid JSON: {e}", field="lambdaFunctionsJSON"
                ) from e
            if not isinstance(parsed, list):
                raise ConfigurationError(
                    "lambdaFunctionsJSON must be a JSON array", field="lambdaFunctionsJSON"
                )
            declared = parsed
        else:
            declared = list(self.functions)

        if not declared:
            raise ConfigurationError(
                "Configuration for at least one Lambda function has to be provided",
                field="lambdaFunctions",
            )
        for entry in declared:
            if not isinstance(entry, Mapping):
                raise ConfigurationError(
                    f"function declaration must be a mapping, got {type(entry).__name__}",
                    field="lambdaFunctions",
                )
        return [dict(entry) for entry in declared]


def load_config(path: str | Path) -> dict[str, Any]:
    """Read a YAML/JSON configuration document.

    A missing file yields an empty document so that every setting can be
    supplied from the command line.

    Raises:
        ConfigurationError: If the file is not valid YAML or not a mapping
    """
    path = Path(path)
    if not path.exists():
        logger.debug("Configuration file %s not found, using defaults", path)
        return {}

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{path} is not valid YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    return data


def parse_key_values(pairs: tuple[str, ...] | list[str]) -> dict[str, str]:
    """Parse ``KEY=VALUE`` command-line pairs into a mapping."""
    result: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ConfigurationError(f"expected KEY=VALUE, got {pair!r}")
        result[key] = value
    return result
