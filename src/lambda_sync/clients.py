"""boto3 client construction for lambda-sync."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError

from .config import DeployOptions
from .exceptions import CredentialsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AwsClients:
    """
    The service clients one run talks to.

    Built once per invocation before any function is processed. Tests
    construct this directly with mocked clients.
    """

    lambda_: Any
    s3: Any
    events: Any
    sns: Any
    sqs: Any
    dynamodb: Any
    kinesis: Any
    kms: Any
    sts: Any
    region: str

    @classmethod
    def from_options(cls, options: DeployOptions) -> AwsClients:
        """Create a session from ``options`` and build every client.

        Resolution order for credentials: explicit accessKey/secretKey →
        named profile → boto3 default chain.

        Raises:
            CredentialsError: If no credentials can be found
        """
        session_kwargs: dict[str, Any] = {"region_name": options.region}
        if options.access_key and options.secret_key:
            session_kwargs["aws_access_key_id"] = options.access_key
            session_kwargs["aws_secret_access_key"] = options.secret_key
        elif options.profile:
            session_kwargs["profile_name"] = options.profile

        try:
            session = boto3.Session(**session_kwargs)
            credentials = session.get_credentials()
        except BotoCoreError as e:
            raise CredentialsError(options.profile) from e
        if credentials is None:
            raise CredentialsError(options.profile)

        client_kwargs: dict[str, Any] = {}
        if options.endpoint_url:
            client_kwargs["endpoint_url"] = options.endpoint_url

        logger.debug(
            "AWS session ready (region=%s, endpoint=%s)",
            options.region,
            options.endpoint_url or "default",
        )

        return cls(
            lambda_=session.client("lambda", **client_kwargs),
            s3=session.client("s3", **client_kwargs),
            events=session.client("events", **client_kwargs),
            sns=session.client("sns", **client_kwargs),
            sqs=session.client("sqs", **client_kwargs),
            dynamodb=session.client("dynamodb", **client_kwargs),
            kinesis=session.client("kinesis", **client_kwargs),
            kms=session.client("kms", **client_kwargs),
            sts=session.client("sts", **client_kwargs),
            region=options.region,
        )
