"""Unit tests for AWSClientManager."""

from unittest.mock import MagicMock, patch

import pytest

from src.awsag.clients.manager import AWSClientManager


class TestAWSClientManager:
    """Test AWSClientManager session and client handling."""

    @patch("src.awsag.clients.manager.boto3")
    def test_explicit_profile_and_region(self, mock_boto3):
        """Test that an explicit region is passed through unchanged."""
        AWSClientManager(profile="dev", region="eu-west-1")

        mock_boto3.Session.assert_called_once_with(profile_name="dev", region_name="eu-west-1")

    @patch("src.awsag.clients.manager.boto3")
    def test_region_taken_from_profile(self, mock_boto3):
        """Test that the profile region is used when no region is given."""
        mock_boto3.Session.return_value.region_name = "us-east-2"

        AWSClientManager(profile="dev")

        assert mock_boto3.Session.call_args_list[-1].kwargs == {
            "profile_name": "dev",
            "region_name": "us-east-2",
        }

    @patch("src.awsag.clients.manager.console")
    @patch("src.awsag.clients.manager.boto3")
    def test_profile_region_lookup_failure_warns(self, mock_boto3, mock_console):
        """Test that a broken profile only prints a warning."""
        session = MagicMock()
        mock_boto3.Session.side_effect = [Exception("profile not found"), session]

        manager = AWSClientManager(profile="broken")

        assert manager.session is session
        assert "Could not get region from profile" in mock_console.print.call_args[0][0]

    @patch("src.awsag.clients.manager.boto3")
    def test_default_session(self, mock_boto3):
        AWSClientManager()

        mock_boto3.Session.assert_called_once_with()

    @patch("src.awsag.clients.manager.boto3")
    def test_clients_are_cached(self, mock_boto3):
        """Test that each service client is created once."""
        session = mock_boto3.Session.return_value
        manager = AWSClientManager(region="us-east-1")

        first = manager.get_identity_center_client()
        second = manager.get_client("sso-admin")
        manager.get_identity_store_client()

        assert first is second
        assert [c.args[0] for c in session.client.call_args_list] == ["sso-admin", "identitystore"]

    @patch("src.awsag.clients.manager.boto3")
    def test_validate_session(self, mock_boto3):
        manager = AWSClientManager(region="us-east-1")
        sts = mock_boto3.Session.return_value.client.return_value

        assert manager.validate_session() is True
        sts.get_caller_identity.assert_called_once()

        sts.get_caller_identity.side_effect = Exception("expired token")
        assert manager.validate_session() is False

    @patch("src.awsag.clients.manager.boto3")
    def test_uninitialized_session(self, mock_boto3):
        manager = AWSClientManager(region="us-east-1")
        manager.session = None

        with pytest.raises(RuntimeError, match="Session not initialized"):
            manager.get_client("sts")
        with pytest.raises(RuntimeError, match="Session not initialized"):
            manager.validate_session()
