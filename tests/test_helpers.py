"""
Tests for shared helpers.
"""

from unittest.mock import Mock

import pytest

from unigit.exceptions import ConfigurationException
from unigit.models import BasicAuth, TokenAuth
from unigit.utils.helpers import ClientCell, sanitize_for_logging, split_full_name


class TestClientCell:
    """Tests for the lazy single-assignment client holder."""

    def test_builds_lazily(self):
        """Test the factory runs on first get only."""
        factory = Mock(return_value="client")
        cell = ClientCell(factory)

        assert cell.is_set is False
        factory.assert_not_called()

        assert cell.get() == "client"
        assert cell.get() == "client"
        factory.assert_called_once()

    def test_set_only_once(self):
        """Test that a stored value is never replaced by set."""
        cell = ClientCell(Mock())
        cell.set("first")
        cell.set("second")

        assert cell.get() == "first"

    def test_losing_client_is_closed(self):
        """Test a client built by a racing caller is closed when it loses."""
        winner = Mock()
        loser = Mock()

        def build():
            # another caller stores its client while this one is being built
            cell.set(winner)
            return loser

        cell = ClientCell(build)

        assert cell.get() is winner
        loser.close.assert_called_once()
        winner.close.assert_not_called()

    def test_set_same_value_is_not_closed(self):
        """Test storing the current value again does not close it."""
        client = Mock()
        cell = ClientCell(Mock())
        cell.set(client)
        cell.set(client)

        client.close.assert_not_called()

    def test_factory_failure_leaves_cell_empty(self):
        """Test that a failing factory does not store anything."""
        factory = Mock(side_effect=[ConfigurationException("bad auth"), "client"])
        cell = ClientCell(factory)

        with pytest.raises(ConfigurationException):
            cell.get()
        assert cell.is_set is False
        assert cell.get() == "client"

    def test_reset_returns_old_value(self):
        """Test reset clears the cell and hands back the old client."""
        factory = Mock(side_effect=["one", "two"])
        cell = ClientCell(factory)
        cell.get()

        assert cell.reset() == "one"
        assert cell.is_set is False
        assert cell.get() == "two"


class TestSplitFullName:
    """Tests for repository name splitting."""

    def test_owner_repo(self):
        """Test a well-formed name."""
        assert split_full_name("octocat/hello-world", "GitHub") == ("octocat", "hello-world")

    @pytest.mark.parametrize("name", ["", "repo", "/repo", "owner/", "a/b/c", None])
    def test_malformed(self, name):
        """Test malformed names raise ConfigurationException."""
        with pytest.raises(ConfigurationException, match="Invalid GitHub repository name"):
            split_full_name(name, "GitHub")

    def test_nested_namespace(self):
        """Test nested namespaces split on the last separator."""
        assert split_full_name("group/sub/project", "GitLab", nested=True) == (
            "group/sub",
            "project",
        )

    @pytest.mark.parametrize("name", ["project", "group/", "/project"])
    def test_nested_malformed(self, name):
        """Test malformed nested names still raise."""
        with pytest.raises(ConfigurationException):
            split_full_name(name, "GitLab", nested=True)


class TestSanitizeForLogging:
    """Tests for credential redaction."""

    def test_redacts_sensitive_keys(self):
        """Test token-like keys are redacted."""
        data = {
            "token": "abc",
            "password": "hunter2",
            "private_key": "-----BEGIN",
            "Authorization": "Bearer abc",
            "user": "octocat",
        }
        clean = sanitize_for_logging(data)

        assert clean["token"] == "[REDACTED]"
        assert clean["password"] == "[REDACTED]"
        assert clean["private_key"] == "[REDACTED]"
        assert clean["Authorization"] == "[REDACTED]"
        assert clean["user"] == "octocat"

    def test_nested_structures(self):
        """Test lists, tuples and nested dicts are walked."""
        clean = sanitize_for_logging({"items": [{"secret": "x", "name": "n"}], "pair": ("a", "b")})

        assert clean == {"items": [{"secret": "[REDACTED]", "name": "n"}], "pair": ("a", "b")}

    def test_dataclasses(self):
        """Test dataclass fields are redacted."""
        assert sanitize_for_logging(TokenAuth("abc")) == {
            "token": "[REDACTED]",
            "kind": "token",
        }
        assert sanitize_for_logging(BasicAuth("user", "pw"))["password"] == "[REDACTED]"

    def test_does_not_mutate_input(self):
        """Test the original mapping is left untouched."""
        data = {"token": "abc"}
        sanitize_for_logging(data)
        assert data == {"token": "abc"}
