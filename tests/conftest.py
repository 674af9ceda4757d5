"""
Shared fixtures for webstack tests.
"""

import pytest

from webstack.core.artifact import Artifact
from webstack.core.compute import (
    BootstrapPayload,
    InstanceType,
    MachineImage,
    SubnetSelector,
    define_instance,
)
from webstack.core.deployment import ServerApplication, ServerDeploymentGroup
from webstack.core.identity import ManagedPolicy, ServicePrincipal, define_identity
from webstack.core.network import SubnetSpec, define_network
from webstack.core.secrets import SecretReference
from webstack.core.security import Peer, Port, add_ingress, define_perimeter
from webstack.core.tags import TargetSelector
from webstack.settings import ProvisionSettings

ZONES = ["us-east-1a", "us-east-1b", "us-east-1c"]


@pytest.fixture
def settings():
    return ProvisionSettings(stack_name="TestStack", region="us-east-1")


@pytest.fixture
def network():
    return define_network(
        "vpc",
        subnet_specs=[
            SubnetSpec("pub01", 24),
            SubnetSpec("pub02", 24),
            SubnetSpec("pub03", 24),
        ],
        availability_zones=ZONES,
    )


@pytest.fixture
def identity():
    return define_identity(
        "ec2Role",
        ServicePrincipal("ec2.amazonaws.com"),
        [ManagedPolicy.from_aws_managed_policy_name("AmazonSSMManagedInstanceCore")],
    )


@pytest.fixture
def perimeter(network):
    sg = define_perimeter("web_sg", network, description="HTTP in")
    add_ingress(sg, Peer.any_ipv4(), Port.tcp(80))
    return sg


@pytest.fixture
def make_instance(network, identity, perimeter):
    def _make(name="web_server", bootstrap=None):
        return define_instance(
            name,
            network=network,
            subnet_selector=SubnetSelector(),
            image=MachineImage.amazon_linux(),
            instance_type=InstanceType.of("t2", "micro"),
            identity=identity,
            perimeter=perimeter,
            bootstrap=bootstrap,
        )
    return _make


@pytest.fixture
def instance(make_instance):
    return make_instance(bootstrap=BootstrapPayload("#!/bin/bash\necho hello\n"))


@pytest.fixture
def oauth_token():
    return SecretReference.secrets_manager("github-oauth-token")


@pytest.fixture
def deployment_group():
    return ServerDeploymentGroup(
        name="PythonAppDeploymentGroup",
        application=ServerApplication("python-webapp"),
        selector=TargetSelector({
            "application-name": ["python-web"],
            "stage": ["prod", "stage"],
        }),
    )


@pytest.fixture
def source_artifact():
    return Artifact()


@pytest.fixture
def bootstrap_file(tmp_path):
    path = tmp_path / "configure.sh"
    path.write_text("#!/bin/bash\nyum install -y python3\n", encoding="utf-8")
    return path
