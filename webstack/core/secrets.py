"""
Secret references: named lookups into an external secret store.

Credentials such as a source-control OAuth token are never embedded in a
topology. Actions hold a SecretReference; the value is looked up by the
provisioning backend, which reports a missing secret as SecretResolutionError.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping

from webstack.errors import ConfigurationError, SecretResolutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SecretReference:
    """
    Reference to a secret held in an external store.

    Maps to:
    - AWS Secrets Manager (CloudFormation dynamic reference)
    - Environment variables locally
    """

    secret_id: str
    """Secret name/identifier in the store"""

    json_field: str | None = None
    """Optional key to extract when the secret holds a JSON object"""

    def __post_init__(self):
        if not self.secret_id:
            raise ConfigurationError("Secret reference needs a secret id")

    @classmethod
    def secrets_manager(cls, secret_id: str, json_field: str | None = None) -> "SecretReference":
        return cls(secret_id=secret_id, json_field=json_field)

    def __str__(self):
        field = self.json_field or ""
        return f"{{{{resolve:secretsmanager:{self.secret_id}:SecretString:{field}::}}}}"


class SecretStore(ABC):
    """Read-only view of an external secret store."""

    @abstractmethod
    def get(self, secret_id: str) -> str | None:
        """Return the secret string, or None if the secret does not exist."""
        pass


class MappingSecretStore(SecretStore):
    """Secret store backed by an in-memory mapping."""

    def __init__(self, secrets: Mapping[str, str]):
        self._secrets = dict(secrets)

    def get(self, secret_id: str) -> str | None:
        return self._secrets.get(secret_id)


class EnvironmentSecretStore(SecretStore):
    """
    Secret store backed by environment variables.

    "github-oauth-token" is read from WEBSTACK_SECRET_GITHUB_OAUTH_TOKEN.
    """

    def __init__(self, prefix: str = "WEBSTACK_SECRET_"):
        self.prefix = prefix

    def variable_name(self, secret_id: str) -> str:
        normalized = "".join(c if c.isalnum() else "_" for c in secret_id)
        return f"{self.prefix}{normalized.upper()}"

    def get(self, secret_id: str) -> str | None:
        return os.environ.get(self.variable_name(secret_id))


def resolve_secret(reference: SecretReference, store: SecretStore) -> str:
    """
    Look up reference in store.

    Raises:
        SecretResolutionError: If the secret or its JSON field does not exist
    """
    value = store.get(reference.secret_id)
    if value is None:
        raise SecretResolutionError(
            f"Secret '{reference.secret_id}' does not exist in {type(store).__name__}"
        )

    if reference.json_field is None:
        return value

    try:
        document = json.loads(value)
    except json.JSONDecodeError as e:
        raise SecretResolutionError(
            f"Secret '{reference.secret_id}' is not a JSON document"
        ) from e
    if not isinstance(document, dict) or reference.json_field not in document:
        raise SecretResolutionError(
            f"Secret '{reference.secret_id}' has no field '{reference.json_field}'"
        )
    logger.debug("Resolved field '%s' of secret '%s'", reference.json_field, reference.secret_id)
    return str(document[reference.json_field])
