"""Unit test fixtures: mocked AWS clients and declaration factories."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from lambda_sync.clients import AwsClients
from lambda_sync.config import DeployOptions
from lambda_sync.manifest import FunctionSpec

ACCOUNT = "123456789012"
REGION = "us-east-1"
ROLE_ARN = f"arn:aws:iam::{ACCOUNT}:role/lambda-exec"


def function_arn(name: str) -> str:
    return f"arn:aws:lambda:{REGION}:{ACCOUNT}:function:{name}"


def client_error(code: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


def not_found(*args, **kwargs):
    raise client_error("ResourceNotFoundException")


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


@pytest.fixture
def mock_aws_env(aws_credentials):
    """Mock AWS services for tests."""
    with mock_aws():
        yield


def _mock_lambda() -> MagicMock:
    client = MagicMock(name="lambda")
    client.get_function.side_effect = not_found
    client.get_policy.side_effect = not_found
    client.list_aliases.return_value = {"Aliases": []}
    client.list_event_source_mappings.return_value = {"EventSourceMappings": []}
    client.create_function.side_effect = lambda **kw: {
        "FunctionArn": function_arn(kw["FunctionName"]),
        "Version": "1",
    }
    client.update_function_code.side_effect = lambda **kw: {
        "FunctionArn": function_arn(kw["FunctionName"]),
        "Version": "2",
    }
    client.create_event_source_mapping.return_value = {"UUID": "new-uuid"}
    return client


def _mock_events() -> MagicMock:
    client = MagicMock(name="events")
    client.describe_rule.side_effect = not_found
    client.list_rule_names_by_target.return_value = {"RuleNames": []}
    client.list_targets_by_rule.return_value = {"Targets": []}
    client.put_rule.side_effect = lambda **kw: {
        "RuleArn": f"arn:aws:events:{REGION}:{ACCOUNT}:rule/{kw['Name']}"
    }
    return client


def _mock_sns() -> MagicMock:
    client = MagicMock(name="sns")
    client.list_subscriptions.return_value = {"Subscriptions": []}
    client.create_topic.side_effect = lambda **kw: {
        "TopicArn": f"arn:aws:sns:{REGION}:{ACCOUNT}:{kw['Name']}"
    }
    return client


def _mock_sqs() -> MagicMock:
    client = MagicMock(name="sqs")
    client.get_queue_url.side_effect = lambda **kw: {
        "QueueUrl": f"https://sqs.{REGION}.amazonaws.com/{ACCOUNT}/{kw['QueueName']}"
    }
    client.get_queue_attributes.side_effect = lambda **kw: {
        "Attributes": {
            "QueueArn": f"arn:aws:sqs:{REGION}:{ACCOUNT}:{kw['QueueUrl'].rsplit('/', 1)[-1]}"
        }
    }
    return client


def _mock_dynamodb() -> MagicMock:
    client = MagicMock(name="dynamodb")
    client.describe_table.side_effect = lambda **kw: {
        "Table": {
            "TableName": kw["TableName"],
            "LatestStreamArn": stream_arn(kw["TableName"]),
            "StreamSpecification": {"StreamEnabled": True, "StreamViewType": "NEW_IMAGE"},
        }
    }
    return client


def _mock_kinesis() -> MagicMock:
    client = MagicMock(name="kinesis")
    client.describe_stream_summary.side_effect = lambda **kw: {
        "StreamDescriptionSummary": {
            "StreamARN": f"arn:aws:kinesis:{REGION}:{ACCOUNT}:stream/{kw['StreamName']}"
        }
    }
    return client


def stream_arn(table_name: str) -> str:
    return f"arn:aws:dynamodb:{REGION}:{ACCOUNT}:table/{table_name}/stream/2024-01-01T00:00:00.000"


@pytest.fixture
def clients() -> AwsClients:
    """AwsClients whose services are MagicMocks with empty listings.

    Listing calls return explicit empty pages so pagination loops end.
    """
    kms = MagicMock(name="kms")
    kms.encrypt.return_value = {"CiphertextBlob": b"ciphertext"}
    s3 = MagicMock(name="s3")
    s3.list_buckets.return_value = {"Buckets": []}
    sts = MagicMock(name="sts")
    sts.get_caller_identity.return_value = {
        "Account": ACCOUNT,
        "Arn": f"arn:aws:iam::{ACCOUNT}:user/deployer",
    }
    return AwsClients(
        lambda_=_mock_lambda(),
        s3=s3,
        events=_mock_events(),
        sns=_mock_sns(),
        sqs=_mock_sqs(),
        dynamodb=_mock_dynamodb(),
        kinesis=_mock_kinesis(),
        kms=kms,
        sts=sts,
        region=REGION,
    )


@pytest.fixture
def options() -> DeployOptions:
    return DeployOptions.from_dict(
        {
            "functionCode": "dist/app.zip",
            "version": "1.0.0",
            "lambdaRoleArn": ROLE_ARN,
        }
    )


@pytest.fixture
def make_spec(options):
    """Factory building a FunctionSpec from a partial declaration."""

    def _make(**declaration) -> FunctionSpec:
        declaration.setdefault("functionName", "orders")
        declaration.setdefault("handler", "app.handler")
        return FunctionSpec.from_dict(declaration, options)

    return _make


def remote_configuration(spec: FunctionSpec, **overrides) -> dict:
    """A GetFunction Configuration block matching ``spec``."""
    configuration = {
        "FunctionName": spec.name,
        "FunctionArn": function_arn(spec.name),
        "Version": "$LATEST",
        "Description": spec.description,
        "Handler": spec.handler,
        "Role": spec.role_arn,
        "Runtime": spec.runtime,
        "Timeout": spec.timeout,
        "MemorySize": spec.memory_size,
        "VpcConfig": spec.vpc_config(),
        "Environment": {"Variables": dict(spec.environment_variables)},
    }
    configuration.update(overrides)
    return configuration
