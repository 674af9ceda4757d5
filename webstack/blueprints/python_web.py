"""
Python web application blueprint.

One public VPC, one web server instance and a three-stage pipeline
(GitHub source -> CodeBuild tests -> CodeDeploy to the tagged instance).
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from webstack.core.artifact import Artifact
from webstack.core.compute import (
    AmazonLinuxGeneration,
    BootstrapPayload,
    CpuType,
    InstanceType,
    MachineImage,
    SubnetSelector,
    define_instance,
)
from webstack.core.deployment import ServerApplication, ServerDeploymentGroup
from webstack.core.identity import ManagedPolicy, ServicePrincipal, define_identity
from webstack.core.network import SubnetSpec, SubnetType, define_network
from webstack.core.pipeline import ActionKind, BuildProject, LinuxBuildImage, add_action
from webstack.core.secrets import SecretReference
from webstack.core.security import Peer, Port, add_ingress, define_perimeter
from webstack.core.tags import TargetSelector, apply_tags
from webstack.core.topology import Topology
from webstack.settings import ProvisionSettings, build_model, read_yaml

IP_ADDRESS_OUTPUT = "IP Address"


class PythonWebAppConfig(BaseModel):
    """
    Knobs of the python web blueprint.

    Example:
        config = PythonWebAppConfig(
            repo_owner="my-org",
            bootstrap_path="./assets/configure_amz_linux_sample_app.sh",
        )
    """

    application_name: str = Field(default="python-web", description="Value of the application-name tag")
    stage: str = Field(default="prod", description="Value of the stage tag on the web server")
    deploy_stages: list[str] = Field(
        default_factory=lambda: ["prod", "stage"],
        description="Stage tag values accepted by the deployment group",
    )

    vpc_cidr: str = Field(default="10.0.0.0/16")
    subnet_names: list[str] = Field(default_factory=lambda: ["pub01", "pub02", "pub03"])
    subnet_mask: int = Field(default=24)
    http_port: int = Field(default=80)
    instance_class: str = Field(default="t2")
    instance_size: str = Field(default="micro")
    bootstrap_path: str | None = Field(
        default=None, description="Boot script run once on the web server"
    )

    pipeline_name: str = Field(default="python-webApp")
    repo_owner: str = Field(default="khadree")
    repo_name: str = Field(default="sample-python-web-app")
    branch: str = Field(default="main")
    oauth_secret_id: str = Field(
        default="github-oauth-token", description="Secrets Manager id of the GitHub token"
    )
    build_project_name: str = Field(default="pythonTestProject")
    build_image: str = Field(default=LinuxBuildImage.AMAZON_LINUX_2_3)
    deploy_application_name: str = Field(default="python-webapp")
    deployment_group_name: str = Field(default="PythonAppDeploymentGroup")


def load_blueprint_config(path: str | Path) -> PythonWebAppConfig:
    """
    Load PythonWebAppConfig from the `app:` section of a YAML file.

    A relative bootstrap_path is taken relative to the file.
    """
    path = Path(path)
    data: dict[str, Any] = dict(read_yaml(path).get("app") or {})
    bootstrap = data.get("bootstrap_path")
    if bootstrap and not Path(bootstrap).is_absolute():
        data["bootstrap_path"] = str(path.parent / bootstrap)
    return build_model(PythonWebAppConfig, data)


def python_web_topology(
    config: PythonWebAppConfig | None = None,
    settings: ProvisionSettings | None = None,
) -> Topology:
    """
    Build the python web application topology.

    Returns:
        Topology ready for synthesize()

    Raises:
        ConfigurationError: If config describes an invalid topology
    """
    config = config or PythonWebAppConfig()
    settings = settings or ProvisionSettings()
    topology = Topology(name=settings.stack_name, settings=settings)

    # Identity
    web_server_role = topology.add_identity(define_identity(
        "ec2Role",
        assumed_by=ServicePrincipal("ec2.amazonaws.com"),
        policies=[
            ManagedPolicy.from_aws_managed_policy_name("AmazonSSMManagedInstanceCore"),
            ManagedPolicy.from_aws_managed_policy_name("service-role/AmazonEC2RoleforAWSCodeDeploy"),
        ],
    ))

    # Network: one public subnet group per name, spread across the zones
    vpc = topology.add_network(define_network(
        "MyDemo_NewVPC",
        subnet_specs=[
            SubnetSpec(name=name, cidr_mask=config.subnet_mask, subnet_type=SubnetType.PUBLIC)
            for name in config.subnet_names
        ],
        availability_zones=settings.availability_zones,
        cidr=config.vpc_cidr,
    ))

    # Only HTTP reaches the web server
    web_sg = topology.add_perimeter(define_perimeter(
        "web_sg",
        vpc,
        description="Allows Inbound HTTP traffic to the web server",
        allow_all_outbound=True,
    ))
    add_ingress(web_sg, Peer.any_ipv4(), Port.tcp(config.http_port))

    bootstrap = None
    if config.bootstrap_path:
        bootstrap = BootstrapPayload.from_file(config.bootstrap_path)

    web_server = topology.add_instance(define_instance(
        "web_server",
        network=vpc,
        subnet_selector=SubnetSelector(SubnetType.PUBLIC),
        image=MachineImage.amazon_linux(AmazonLinuxGeneration.AMAZON_LINUX_2, CpuType.X86_64),
        instance_type=InstanceType.of(config.instance_class, config.instance_size),
        identity=web_server_role,
        perimeter=web_sg,
        bootstrap=bootstrap,
    ))
    apply_tags(web_server, {
        "application-name": config.application_name,
        "stage": config.stage,
    })

    topology.export(IP_ADDRESS_OUTPUT, web_server.public_ip)

    # Pipeline
    pipeline = topology.pipeline(config.pipeline_name, cross_account_keys=False)
    source_stage = pipeline.add_stage("Source")
    build_stage = pipeline.add_stage("Build")
    deploy_stage = pipeline.add_stage("Deploy")

    source_output = Artifact()
    add_action(
        source_stage,
        ActionKind.SOURCE,
        name="GithubSource",
        owner=config.repo_owner,
        repo=config.repo_name,
        branch=config.branch,
        oauth_token=SecretReference.secrets_manager(config.oauth_secret_id),
        output=source_output,
    )

    test_output = Artifact()
    add_action(
        build_stage,
        ActionKind.BUILD,
        name="TestPython",
        project=BuildProject(name=config.build_project_name, build_image=config.build_image),
        input=source_output,
        outputs=[test_output],
    )

    # The selector accepts stage=stage too, although only prod is tagged
    deployment_group = topology.add_deployment_group(ServerDeploymentGroup(
        name=config.deployment_group_name,
        application=ServerApplication(config.deploy_application_name),
        selector=TargetSelector({
            "application-name": [config.application_name],
            "stage": config.deploy_stages,
        }),
        install_agent=True,
    ))

    # Deploys the source artifact, not the test output
    add_action(
        deploy_stage,
        ActionKind.DEPLOY,
        name="PythonAppDeployment",
        input=source_output,
        deployment_group=deployment_group,
    )

    return topology
