"""
webstack: provision a web server and its delivery pipeline from code.

webstack describes a hosting environment as plain Python values that are
wired together explicitly and synthesized into a provisioning plan.

Core concepts:
- Network / SecurityPerimeter / Identity / Instance: the hosting resources
- Pipeline: ordered stages of actions exchanging Artifacts
- TargetSelector: tag predicate choosing the instances a deploy reaches
- Topology: aggregate of everything, validated by synthesize()

Example:
    from webstack import ProvisionSettings
    from webstack.blueprints import python_web_topology

    topology = python_web_topology(settings=ProvisionSettings(region="eu-west-1"))
    plan = topology.synthesize()
    print(plan.to_yaml())
"""

from webstack.core.artifact import Artifact
from webstack.core.compute import define_instance
from webstack.core.identity import define_identity
from webstack.core.network import define_network
from webstack.core.outputs import OutputExporter
from webstack.core.pipeline import Pipeline, add_action, add_stage, new_pipeline
from webstack.core.security import add_ingress, define_perimeter
from webstack.core.tags import TargetSelector, select_targets, tag
from webstack.core.topology import Topology
from webstack.errors import (
    ConfigurationError,
    SecretResolutionError,
    UnresolvedAttributeError,
    WebstackError,
)
from webstack.settings import ProvisionSettings

__version__ = "0.1.0"
__all__ = [
    "Artifact",
    "OutputExporter",
    "Pipeline",
    "ProvisionSettings",
    "TargetSelector",
    "Topology",
    # Operations
    "define_identity",
    "define_network",
    "define_perimeter",
    "add_ingress",
    "define_instance",
    "tag",
    "new_pipeline",
    "add_stage",
    "add_action",
    "select_targets",
    # Errors
    "WebstackError",
    "ConfigurationError",
    "UnresolvedAttributeError",
    "SecretResolutionError",
]
