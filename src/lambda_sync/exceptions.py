"""Exceptions for lambda-sync."""

from botocore.exceptions import ClientError

# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------


class LambdaSyncError(Exception):
    """
    Base exception for all lambda-sync errors.

    All exceptions raised by this library inherit from this class,
    allowing callers to catch all library-specific errors with a single
    except clause.
    """

    pass


# ---------------------------------------------------------------------------
# Configuration Exceptions
# ---------------------------------------------------------------------------


class ConfigurationError(LambdaSyncError):
    """
    Raised when the declared configuration is invalid.

    This is fatal for the function being normalized and is always raised
    before any remote call is made on its behalf.

    Attributes:
        field: The configuration key that is missing or invalid
        function_name: The function the key belongs to (if known)
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        function_name: str | None = None,
    ) -> None:
        self.field = field
        self.function_name = function_name
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        context = []
        if self.function_name:
            context.append(f"function={self.function_name}")
        if self.field:
            context.append(f"field={self.field}")
        if context:
            return f"Configuration error: {message} [{', '.join(context)}]"
        return f"Configuration error: {message}"


class UnknownIntegrationError(ConfigurationError):
    """Raised when a trigger declares an integration kind that is not supported."""

    def __init__(self, integration: str, function_name: str | None = None) -> None:
        self.integration = integration
        super().__init__(
            f"Unknown integration for trigger '{integration}'. Correct your configuration",
            field="integration",
            function_name=function_name,
        )


# ---------------------------------------------------------------------------
# Remote Exceptions
# ---------------------------------------------------------------------------


class ResourceResolutionError(LambdaSyncError):
    """
    Raised when a named event source cannot be resolved to an ARN.

    Fatal for the trigger that declared it only.

    Attributes:
        kind: Resource kind (e.g., "DynamoDB table", "SQS queue")
        name: The unresolvable resource name
    """

    def __init__(self, kind: str, name: str, reason: str | None = None) -> None:
        self.kind = kind
        self.name = name
        msg = f"Unable to resolve {kind} '{name}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class CredentialsError(LambdaSyncError):
    """Raised when AWS credentials cannot be found. Fatal for the whole run."""

    def __init__(self, profile: str | None = None) -> None:
        self.profile = profile
        msg = "Unable to locate AWS credentials"
        if profile:
            msg += f" for profile '{profile}'"
        msg += ". Set accessKey/secretKey or configure the default credentials chain."
        super().__init__(msg)


class ArtifactError(LambdaSyncError):
    """Raised when the deployable artifact cannot be read or staged."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Artifact {path}: {reason}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

NOT_FOUND_CODES = frozenset(
    {
        "ResourceNotFoundException",
        "NoSuchEntity",
        "NotFound",
        "NoSuchKey",
        "NoSuchBucket",
        "404",
        "AWS.SimpleQueueService.NonExistentQueue",
        "QueueDoesNotExist",
    }
)


def error_code(err: ClientError) -> str:
    """Return the AWS error code carried by a botocore ClientError."""
    return str(err.response.get("Error", {}).get("Code", ""))


def is_not_found(err: Exception) -> bool:
    """Whether ``err`` is the provider's "resource does not exist" signal."""
    return isinstance(err, ClientError) and error_code(err) in NOT_FOUND_CODES
