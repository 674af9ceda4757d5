"""
Core webstack model.

- Network, SecurityPerimeter, Identity, Instance: the hosting resources
- Pipeline, Stage, Action, Artifact: the delivery pipeline
- TargetSelector, ServerDeploymentGroup: tag-based deployment targeting
- OutputExporter, Attribute: values surfaced after realization
- Topology: the aggregate that is synthesized into a plan
"""

from webstack.core.artifact import Artifact
from webstack.core.compute import (
    AmazonLinuxGeneration,
    BootstrapPayload,
    CpuType,
    Instance,
    InstanceType,
    MachineImage,
    SubnetSelector,
    define_instance,
)
from webstack.core.dag import ActionGraph
from webstack.core.deployment import ServerApplication, ServerDeploymentGroup
from webstack.core.identity import Identity, ManagedPolicy, ServicePrincipal, define_identity
from webstack.core.network import Network, Subnet, SubnetSpec, SubnetType, define_network
from webstack.core.outputs import Attribute, OutputExporter
from webstack.core.pipeline import (
    Action,
    ActionKind,
    BuildAction,
    BuildProject,
    DeployAction,
    GitHubTrigger,
    LinuxBuildImage,
    Pipeline,
    SourceAction,
    Stage,
    add_action,
    add_stage,
    new_pipeline,
)
from webstack.core.secrets import (
    EnvironmentSecretStore,
    MappingSecretStore,
    SecretReference,
    SecretStore,
    resolve_secret,
)
from webstack.core.security import (
    Direction,
    Peer,
    Port,
    Protocol,
    SecurityPerimeter,
    SecurityRule,
    add_ingress,
    define_perimeter,
)
from webstack.core.tags import TargetSelector, apply_tags, select_targets, tag
from webstack.core.topology import SynthesizedTopology, Topology

__all__ = [
    "Action",
    "ActionGraph",
    "ActionKind",
    "AmazonLinuxGeneration",
    "Artifact",
    "Attribute",
    "BootstrapPayload",
    "BuildAction",
    "BuildProject",
    "CpuType",
    "DeployAction",
    "Direction",
    "EnvironmentSecretStore",
    "GitHubTrigger",
    "Identity",
    "Instance",
    "InstanceType",
    "LinuxBuildImage",
    "MachineImage",
    "ManagedPolicy",
    "MappingSecretStore",
    "Network",
    "OutputExporter",
    "Peer",
    "Pipeline",
    "Port",
    "Protocol",
    "SecretReference",
    "SecretStore",
    "SecurityPerimeter",
    "SecurityRule",
    "ServerApplication",
    "ServerDeploymentGroup",
    "ServicePrincipal",
    "SourceAction",
    "Stage",
    "Subnet",
    "SubnetSelector",
    "SubnetSpec",
    "SubnetType",
    "SynthesizedTopology",
    "TargetSelector",
    "Topology",
    "add_action",
    "add_ingress",
    "add_stage",
    "apply_tags",
    "define_identity",
    "define_instance",
    "define_network",
    "define_perimeter",
    "new_pipeline",
    "resolve_secret",
    "select_targets",
    "tag",
]
