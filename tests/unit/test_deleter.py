"""Tests for the deletion reconciler."""

from lambda_sync.deleter import DeletionReconciler
from tests.unit.conftest import client_error, function_arn, remote_configuration


def existing(clients, spec):
    clients.lambda_.get_function.side_effect = None
    clients.lambda_.get_function.return_value = {"Configuration": remote_configuration(spec)}


class TestDeletionReconciler:
    """Tests for DeletionReconciler.delete."""

    def test_missing_function(self, clients, make_spec):
        result = DeletionReconciler(clients).delete(make_spec())

        assert result.action == "not_found"
        clients.lambda_.delete_function.assert_not_called()

    def test_tears_down_triggers_then_deletes(self, clients, make_spec):
        spec = make_spec(
            keepAlive=5,
            triggers=[
                {"integration": "SNS", "snsTopic": "alerts"},
                {"integration": "Alexa Skills Kit"},
            ],
        )
        existing(clients, spec)
        clients.events.list_targets_by_rule.return_value = {
            "Targets": [{"Id": "1", "Arn": function_arn("orders")}]
        }

        result = DeletionReconciler(clients).delete(spec)

        clients.events.delete_rule.assert_called_once_with(Name="KEEP-ALIVE-orders")
        statement_ids = {c.kwargs["StatementId"] for c in clients.lambda_.remove_permission.call_args_list}
        assert statement_ids == {"sns-alerts", "alexa-us-east-1", "events-KEEP-ALIVE-orders"}
        clients.lambda_.delete_function.assert_called_once_with(FunctionName="orders")
        assert result.action == "deleted"
        assert result.errors == []

    def test_teardown_errors_are_not_fatal(self, clients, make_spec):
        spec = make_spec(
            triggers=[
                {"integration": "DynamoDB", "dynamoDBTable": "missing"},
                {"integration": "Alexa Skills Kit"},
            ]
        )
        existing(clients, spec)
        clients.dynamodb.describe_table.side_effect = client_error("ResourceNotFoundException")

        result = DeletionReconciler(clients).delete(spec)

        assert result.action == "deleted"
        assert len(result.errors) == 1
        assert "missing" in result.errors[0]
        clients.lambda_.delete_function.assert_called_once()

    def test_function_gone_during_delete(self, clients, make_spec):
        spec = make_spec()
        existing(clients, spec)
        clients.lambda_.delete_function.side_effect = client_error("ResourceNotFoundException")

        assert DeletionReconciler(clients).delete(spec).action == "deleted"

    def test_missing_function_leftovers_are_removed(self, clients, make_spec):
        """Rules and subscriptions outlive a function deleted by hand."""
        spec = make_spec(keepAlive=5, triggers=[{"integration": "SNS", "snsTopic": "alerts"}])
        clients.events.list_targets_by_rule.return_value = {
            "Targets": [{"Id": "1", "Arn": function_arn("orders")}]
        }
        clients.sns.list_subscriptions.return_value = {
            "Subscriptions": [
                {
                    "SubscriptionArn": "arn:aws:sns:us-east-1:123456789012:alerts:sub-1",
                    "TopicArn": "arn:aws:sns:us-east-1:123456789012:alerts",
                    "Protocol": "lambda",
                    "Endpoint": function_arn("orders"),
                }
            ]
        }
        clients.lambda_.remove_permission.side_effect = client_error("ResourceNotFoundException")

        result = DeletionReconciler(clients).delete(spec)

        assert result.action == "not_found"
        assert result.errors == []
        clients.events.remove_targets.assert_called_once_with(Rule="KEEP-ALIVE-orders", Ids=["1"])
        clients.events.delete_rule.assert_called_once_with(Name="KEEP-ALIVE-orders")
        clients.sns.unsubscribe.assert_called_once_with(
            SubscriptionArn="arn:aws:sns:us-east-1:123456789012:alerts:sub-1"
        )
        clients.lambda_.delete_function.assert_not_called()

    def test_missing_function_without_identity(self, clients, make_spec):
        clients.sts.get_caller_identity.side_effect = client_error("ExpiredToken")

        result = DeletionReconciler(clients).delete(make_spec(keepAlive=5))

        assert result.action == "not_found"
        assert len(result.errors) == 1
        clients.events.delete_rule.assert_not_called()
