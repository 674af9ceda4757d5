"""
Tests for secret references and stores.
"""

import json

import pytest

from webstack.core.secrets import (
    EnvironmentSecretStore,
    MappingSecretStore,
    SecretReference,
    resolve_secret,
)
from webstack.errors import ConfigurationError, SecretResolutionError


class TestSecretReference:
    """Tests for SecretReference."""

    def test_dynamic_reference(self):
        """References render as Secrets Manager dynamic references."""
        ref = SecretReference.secrets_manager("github-oauth-token", json_field="token")

        assert str(ref) == "{{resolve:secretsmanager:github-oauth-token:SecretString:token::}}"

    def test_empty_id(self):
        """A reference needs an id."""
        with pytest.raises(ConfigurationError):
            SecretReference("")


class TestResolveSecret:
    """Tests for resolve_secret."""

    def test_plain_secret(self, oauth_token):
        """A present secret resolves to its string."""
        store = MappingSecretStore({"github-oauth-token": "ghp_abc"})

        assert resolve_secret(oauth_token, store) == "ghp_abc"

    def test_missing_secret(self, oauth_token):
        """A missing secret raises SecretResolutionError."""
        with pytest.raises(SecretResolutionError, match="github-oauth-token"):
            resolve_secret(oauth_token, MappingSecretStore({}))

    def test_json_field(self):
        """A JSON field is extracted from a structured secret."""
        store = MappingSecretStore({"creds": json.dumps({"token": "ghp_abc"})})

        assert resolve_secret(SecretReference("creds", "token"), store) == "ghp_abc"

    def test_missing_json_field(self):
        """An absent field raises SecretResolutionError."""
        store = MappingSecretStore({"creds": json.dumps({"other": "x"})})

        with pytest.raises(SecretResolutionError, match="no field 'token'"):
            resolve_secret(SecretReference("creds", "token"), store)

    def test_not_json(self):
        """A field lookup on a plain string secret raises."""
        store = MappingSecretStore({"creds": "plain"})

        with pytest.raises(SecretResolutionError, match="not a JSON document"):
            resolve_secret(SecretReference("creds", "token"), store)


class TestEnvironmentSecretStore:
    """Tests for the environment-backed store."""

    def test_variable_name(self):
        """Secret ids map to upper-case variable names."""
        store = EnvironmentSecretStore()

        assert store.variable_name("github-oauth-token") == "WEBSTACK_SECRET_GITHUB_OAUTH_TOKEN"

    def test_reads_environment(self, monkeypatch, oauth_token):
        """Secrets are read from the environment."""
        monkeypatch.setenv("WEBSTACK_SECRET_GITHUB_OAUTH_TOKEN", "ghp_env")

        assert resolve_secret(oauth_token, EnvironmentSecretStore()) == "ghp_env"

    def test_missing_variable(self, monkeypatch, oauth_token):
        """An unset variable is a missing secret."""
        monkeypatch.delenv("WEBSTACK_SECRET_GITHUB_OAUTH_TOKEN", raising=False)

        with pytest.raises(SecretResolutionError):
            resolve_secret(oauth_token, EnvironmentSecretStore())
