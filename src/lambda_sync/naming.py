"""Resource naming and ARN utilities.

Everything that derives a name, a statement id or an ARN from declared
configuration lives here so that reconciliation and orphan cleanup agree
on the same identities.
"""

import hashlib
import os
import re
from dataclasses import dataclass

CONFIG_ENV_VAR = "LAMBDA_SYNC_CONFIG"
"""Environment variable for overriding the configuration file path."""

DEFAULT_CONFIG_PATH = "lambda-sync.yaml"
"""Configuration file read when neither ``--config`` nor the env var is set."""

KEEP_ALIVE_PREFIX = "KEEP-ALIVE-"

# Lambda statement ids: letters, digits, hyphen and underscore; 100 chars max
_STATEMENT_ID_INVALID = re.compile(r"[^A-Za-z0-9_-]")
_STATEMENT_ID_MAX = 100
_STATEMENT_ID_HASH_LENGTH = 8

# arn:aws:lambda:us-east-1:123456789012:function:name[:qualifier]
FUNCTION_ARN_PATTERN = re.compile(
    r"^arn:(?P<partition>[^:]+):lambda:(?P<region>[^:]+):(?P<account>\d+):"
    r"function:(?P<name>[^:]+)(?::(?P<qualifier>[^:]+))?$"
)


@dataclass(frozen=True)
class FunctionArn:
    """Parsed Lambda function ARN."""

    partition: str
    region: str
    account: str
    name: str
    qualifier: str | None = None

    @classmethod
    def parse(cls, arn: str) -> "FunctionArn":
        match = FUNCTION_ARN_PATTERN.match(arn)
        if match is None:
            raise ValueError(f"Not a Lambda function ARN: {arn}")
        return cls(**match.groupdict())

    @property
    def unqualified(self) -> str:
        return (
            f"arn:{self.partition}:lambda:{self.region}:{self.account}:function:{self.name}"
        )

    def qualified(self, qualifier: str | None) -> str:
        """ARN triggers should target: unqualified unless ``qualifier`` is given."""
        if not qualifier:
            return self.unqualified
        return f"{self.unqualified}:{qualifier}"

    def rule_arn(self, rule_name: str) -> str:
        return f"arn:{self.partition}:events:{self.region}:{self.account}:rule/{rule_name}"

    def topic_arn(self, topic_name: str) -> str:
        return f"arn:{self.partition}:sns:{self.region}:{self.account}:{topic_name}"

    def lex_intent_arn(self, bot_name: str) -> str:
        return f"arn:{self.partition}:lex:{self.region}:{self.account}:intent:{bot_name}:*"


def add_suffix(name: str, suffix: str | None) -> str:
    """Append the configured function-name suffix (no-op without one)."""
    if not suffix:
        return name
    return f"{name}{suffix}"


def normalize_version(version: str) -> str:
    """Turn a build version into a valid alias name (``1.0.0`` -> ``1-0-0``)."""
    return version.replace(".", "-")


def artifact_key(path: str, prefix: str = "") -> str:
    """S3 key for an artifact: ``<prefix><file name>``."""
    return f"{prefix}{os.path.basename(path)}"


def keep_alive_rule_name(function_name: str) -> str:
    return f"{KEEP_ALIVE_PREFIX}{function_name}"


def keep_alive_schedule(minutes: int) -> str:
    return f"rate({minutes} {'minutes' if minutes > 1 else 'minute'})"


def statement_id(*parts: str) -> str:
    """Build a deterministic Lambda permission statement id from ``parts``.

    Ids longer than Lambda allows are cut short and end with a digest of the
    full id, so names sharing a long prefix still get distinct ids.
    """
    raw = "-".join(p for p in parts if p)
    sid = _STATEMENT_ID_INVALID.sub("_", raw)
    if len(sid) <= _STATEMENT_ID_MAX:
        return sid
    digest = hashlib.sha256(raw.encode()).hexdigest()[:_STATEMENT_ID_HASH_LENGTH]
    return f"{sid[: _STATEMENT_ID_MAX - _STATEMENT_ID_HASH_LENGTH - 1]}-{digest}"


def resolve_config_path(path: str | None) -> str:
    """Resolve configuration path from explicit arg, env var, or default.

    Resolution order: ``path`` arg → ``LAMBDA_SYNC_CONFIG`` env var →
    ``"lambda-sync.yaml"``.
    """
    return path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
