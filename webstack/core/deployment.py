"""
Deployment targets: applications and the instance groups they deploy to.
"""

from dataclasses import dataclass, field
from typing import Any, Iterable

from webstack.core.compute import Instance
from webstack.core.identity import ManagedPolicy
from webstack.core.tags import TargetSelector, select_targets
from webstack.errors import ConfigurationError

CODEDEPLOY_SERVICE_POLICY = ManagedPolicy.from_aws_managed_policy_name(
    "service-role/AWSCodeDeployRole"
)


@dataclass(frozen=True)
class ServerApplication:
    """A deployable application on plain compute instances."""

    name: str

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Application name must not be empty")


@dataclass(frozen=True)
class ServerDeploymentGroup:
    """
    The set of instances an application is deployed to, chosen by tags.

    Example:
        group = ServerDeploymentGroup(
            name="PythonAppDeploymentGroup",
            application=ServerApplication("python-webapp"),
            selector=TargetSelector({"stage": ["prod", "stage"]}),
        )
    """

    name: str
    application: ServerApplication
    selector: TargetSelector
    install_agent: bool = True
    service_policies: tuple[ManagedPolicy, ...] = field(
        default=(CODEDEPLOY_SERVICE_POLICY,)
    )

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Deployment group name must not be empty")
        if not isinstance(self.selector, TargetSelector):
            raise ConfigurationError(
                f"Deployment group '{self.name}' needs a TargetSelector"
            )

    def targets(self, instances: Iterable[Instance]) -> list[Instance]:
        return select_targets(instances, self.selector)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "deployment_group",
            "name": self.name,
            "application": self.application.name,
            "install_agent": self.install_agent,
            "instance_tags": self.selector.to_dict(),
            "service_policy_arns": [p.arn for p in self.service_policies],
        }
