"""
IdentityBinding: execution roles and the managed policies attached to them.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from webstack.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServicePrincipal:
    """A cloud service allowed to assume a role (e.g. "ec2.amazonaws.com")."""

    service: str

    def trust_policy(self) -> dict[str, Any]:
        """Render the assume-role policy document for this principal."""
        return {
            "Version": "2012-10-17",
            "Statement": [{
                "Effect": "Allow",
                "Principal": {"Service": self.service},
                "Action": "sts:AssumeRole"
            }]
        }


@dataclass(frozen=True)
class ManagedPolicy:
    """A reference to a managed permission policy by name."""

    name: str
    aws_managed: bool = True

    @classmethod
    def from_aws_managed_policy_name(cls, name: str) -> "ManagedPolicy":
        return cls(name=name, aws_managed=True)

    @property
    def arn(self) -> str:
        if self.aws_managed:
            return f"arn:aws:iam::aws:policy/{self.name}"
        return self.name


class Identity:
    """
    An execution principal: a trust relationship plus ordered policy grants.

    Policy grants are idempotent to add; the order of first insertion is kept.

    Example:
        role = define_identity("ec2Role", ServicePrincipal("ec2.amazonaws.com"))
        role.add_managed_policy(
            ManagedPolicy.from_aws_managed_policy_name("AmazonSSMManagedInstanceCore")
        )
    """

    def __init__(self, name: str, assumed_by: ServicePrincipal):
        if not name:
            raise ConfigurationError("Identity name must not be empty")
        self.name = name
        self.assumed_by = assumed_by
        self._policies: list[ManagedPolicy] = []

    @property
    def managed_policies(self) -> tuple[ManagedPolicy, ...]:
        return tuple(self._policies)

    def add_managed_policy(self, policy: ManagedPolicy) -> None:
        """Attach a managed policy. Attaching the same policy twice is a no-op."""
        if policy in self._policies:
            return
        self._policies.append(policy)
        logger.debug("Attached %s to identity '%s'", policy.arn, self.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "identity",
            "name": self.name,
            "assume_role_policy": self.assumed_by.trust_policy(),
            "managed_policy_arns": [p.arn for p in self._policies],
        }

    def __repr__(self):
        return f"Identity({self.name}, assumed_by={self.assumed_by.service})"


def define_identity(
    name: str,
    assumed_by: ServicePrincipal,
    policies: Iterable[ManagedPolicy] = ()
) -> Identity:
    """Create an Identity and attach the given policies in order."""
    identity = Identity(name=name, assumed_by=assumed_by)
    for policy in policies:
        identity.add_managed_policy(policy)
    return identity
