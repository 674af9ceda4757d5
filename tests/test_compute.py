"""
Tests for identities and compute instances.
"""

import pytest

from webstack.core.compute import (
    BootstrapPayload,
    InstanceType,
    MachineImage,
    SubnetSelector,
    define_instance,
)
from webstack.core.identity import ManagedPolicy, ServicePrincipal, define_identity
from webstack.core.network import SubnetSpec, SubnetType, define_network
from webstack.core.outputs import Attribute
from webstack.core.security import define_perimeter
from webstack.core.tags import tag
from webstack.errors import ConfigurationError


class TestIdentity:
    """Tests for identities and managed policies."""

    def test_policy_arn(self):
        """AWS managed policies render to the aws policy namespace."""
        policy = ManagedPolicy.from_aws_managed_policy_name("AmazonSSMManagedInstanceCore")

        assert policy.arn == "arn:aws:iam::aws:policy/AmazonSSMManagedInstanceCore"

    def test_add_policy_idempotent(self, identity):
        """Attaching a policy twice leaves one grant."""
        policy = ManagedPolicy.from_aws_managed_policy_name("AmazonSSMManagedInstanceCore")
        identity.add_managed_policy(policy)
        identity.add_managed_policy(policy)

        assert identity.managed_policies == (policy,)

    def test_policy_order_kept(self):
        """Policies keep the order they were first added in."""
        a = ManagedPolicy.from_aws_managed_policy_name("A")
        b = ManagedPolicy.from_aws_managed_policy_name("B")
        role = define_identity("role", ServicePrincipal("ec2.amazonaws.com"), [b, a, b])

        assert [p.name for p in role.managed_policies] == ["B", "A"]

    def test_trust_policy(self, identity):
        """The trust policy names the assuming service."""
        statement = identity.to_dict()["assume_role_policy"]["Statement"][0]

        assert statement["Principal"] == {"Service": "ec2.amazonaws.com"}
        assert statement["Action"] == "sts:AssumeRole"


class TestMachineSpec:
    """Tests for images, sizes and subnet selection."""

    def test_amazon_linux_parameter(self):
        """Amazon Linux 2 resolves through its public SSM parameter."""
        image = MachineImage.amazon_linux()

        assert image.ssm_parameter == (
            "/aws/service/ami-amazon-linux-latest/amzn2-ami-hvm-x86_64-gp2"
        )

    def test_instance_type(self):
        """Instance types render as class.size."""
        assert str(InstanceType.of("T2", "Micro")) == "t2.micro"

    def test_selects_first_public_subnet(self, network):
        """The default selector picks the first public subnet."""
        assert SubnetSelector().select(network).name == "pub01Subnet1"

    def test_selects_by_zone(self, network):
        """A zone narrows the selection."""
        subnet = SubnetSelector(availability_zone="us-east-1c").select(network)

        assert subnet.name == "pub01Subnet3"

    def test_no_matching_subnet(self, network):
        """Selecting a type the network lacks raises ConfigurationError."""
        with pytest.raises(ConfigurationError, match="no private_isolated subnet"):
            SubnetSelector(SubnetType.PRIVATE_ISOLATED).select(network)


class TestDefineInstance:
    """Tests for define_instance."""

    def test_instance_fields(self, instance, identity, perimeter):
        """The instance is placed in a public subnet with its identity."""
        assert instance.subnet.is_public
        assert instance.identity is identity
        assert instance.perimeters == (perimeter,)
        assert instance.user_data == "#!/bin/bash\necho hello"

    def test_exposes_unresolved_attributes(self, instance):
        """Public IP and id are placeholders until realization."""
        assert isinstance(instance.public_ip, Attribute)
        assert not instance.public_ip.is_resolved
        assert not instance.instance_id.is_resolved

    def test_perimeter_on_other_network(self, network, identity):
        """A perimeter from another network is rejected."""
        other = define_network("other", [SubnetSpec("pub", 24)], ["us-east-1a"])
        foreign = define_perimeter("foreign", other)

        with pytest.raises(ConfigurationError, match="belongs to network 'other'"):
            define_instance(
                "web", network, SubnetSelector(), MachineImage.amazon_linux(),
                InstanceType.of("t2", "micro"), identity, foreign,
            )

    def test_identity_must_be_for_ec2(self, network, perimeter):
        """An identity assumed by another service cannot run an instance."""
        lambda_role = define_identity("fn", ServicePrincipal("lambda.amazonaws.com"))

        with pytest.raises(ConfigurationError, match="ec2.amazonaws.com"):
            define_instance(
                "web", network, SubnetSelector(), MachineImage.amazon_linux(),
                InstanceType.of("t2", "micro"), lambda_role, perimeter,
            )

    def test_bootstrap_from_file(self, make_instance, bootstrap_file):
        """Bootstrap scripts are read verbatim from disk."""
        payload = BootstrapPayload.from_file(bootstrap_file)
        web = make_instance(bootstrap=payload)

        assert payload.source == str(bootstrap_file)
        assert "yum install -y python3" in web.user_data

    def test_missing_bootstrap_file(self, tmp_path):
        """A missing bootstrap file raises ConfigurationError."""
        with pytest.raises(ConfigurationError, match="Cannot read bootstrap"):
            BootstrapPayload.from_file(tmp_path / "missing.sh")

    def test_user_data_appends(self, instance):
        """Later payloads run after earlier ones."""
        instance.add_user_data("echo second")

        assert instance.user_data.splitlines()[-1] == "echo second"

    def test_tagging_idempotent(self, instance):
        """Setting the same tag twice leaves one entry; a new value overwrites."""
        tag(instance, "stage", "prod")
        tag(instance, "stage", "prod")
        assert instance.tags == {"stage": "prod"}

        tag(instance, "stage", "dev")
        assert instance.tags == {"stage": "dev"}

    def test_tags_returns_copy(self, instance):
        """Mutating the returned tag map does not tag the instance."""
        instance.tags["stage"] = "prod"

        assert instance.tags == {}

    def test_empty_tag_key(self, instance):
        """Empty tag keys are rejected."""
        with pytest.raises(ConfigurationError):
            tag(instance, "", "x")
