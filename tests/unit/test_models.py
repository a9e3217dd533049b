"""Tests for remote state models and results."""

import json

from lambda_sync.models import (
    FunctionResult,
    PermissionStatement,
    Policy,
    RemoteFunctionState,
    RunReport,
)


class TestPolicy:
    """Tests for Policy."""

    def test_from_json(self):
        document = json.dumps(
            {
                "Statement": [
                    {
                        "Sid": "sns-alerts",
                        "Principal": {"Service": "sns.amazonaws.com"},
                        "Action": "lambda:InvokeFunction",
                        "Condition": {"ArnLike": {"AWS:SourceArn": "arn:aws:sns:us-east-1:1:alerts"}},
                    },
                    {
                        "Sid": "alexa-us-east-1",
                        "Principal": {"Service": "alexa-appkit.amazon.com"},
                        "Action": "lambda:InvokeFunction",
                    },
                ]
            }
        )

        policy = Policy.from_json(document)

        assert len(policy) == 2
        assert policy.allows("sns.amazonaws.com", "arn:aws:sns:us-east-1:1:alerts")
        assert not policy.allows("sns.amazonaws.com", "arn:aws:sns:us-east-1:1:other")
        assert policy.allows("alexa-appkit.amazon.com")
        assert policy.has_sid("alexa-us-east-1")

    def test_empty(self):
        assert len(Policy.from_json(None)) == 0
        assert not Policy().allows("sns.amazonaws.com")

    def test_managed(self):
        policy = Policy.of(
            [
                PermissionStatement("s3", "s3.amazonaws.com", "lambda:InvokeFunction"),
                PermissionStatement("lex", "lex.amazonaws.com", "lambda:InvokeFunction"),
                PermissionStatement("events", "events.amazonaws.com", "lambda:InvokeFunction"),
            ]
        )
        assert [s.sid for s in policy.managed()] == ["events", "lex"]


class TestRemoteFunctionState:
    """Tests for RemoteFunctionState.from_configuration."""

    def test_from_configuration(self):
        state = RemoteFunctionState.from_configuration(
            {
                "FunctionName": "orders",
                "FunctionArn": "arn:aws:lambda:us-east-1:1:function:orders",
                "Handler": "app.handler",
                "Timeout": 30,
                "MemorySize": 512,
                "VpcConfig": {"SubnetIds": ["subnet-1"], "SecurityGroupIds": ["sg-1"]},
                "Environment": {"Variables": {"A": "1"}},
            },
            aliases=["live"],
        )

        assert state.subnet_ids == ("subnet-1",)
        assert state.security_group_ids == ("sg-1",)
        assert state.environment_variables == {"A": "1"}
        assert state.aliases == frozenset({"live"})
        assert state.description == ""
        assert len(state.policy) == 0

    def test_missing_optional_blocks(self):
        state = RemoteFunctionState.from_configuration(
            {"FunctionName": "f", "FunctionArn": "arn:aws:lambda:us-east-1:1:function:f"}
        )
        assert state.subnet_ids == ()
        assert state.environment_variables == {}


class TestRunReport:
    """Tests for RunReport."""

    def test_counts(self):
        report = RunReport(
            functions=[
                FunctionResult("a", action="created"),
                FunctionResult("b", action="skipped"),
                FunctionResult("c", action="failed", errors=["boom"]),
            ]
        )
        assert (report.created, report.skipped, report.failed) == (1, 1, 1)
        assert not report.ok
        assert report.errors == ["c: boom"]

    def test_empty_report_is_ok(self):
        assert RunReport().ok
