"""
Pulumi compiler: realizes a Topology as pulumi_aws resources.

Must run inside a Pulumi program (or under pulumi.runtime mocks). Resources
are registered with the Pulumi engine as they are created.
"""

import json
import logging
from typing import TYPE_CHECKING, Any

try:
    import pulumi
except ImportError:
    raise ImportError(
        "pulumi required for PulumiCompiler. "
        "Install with: pip install webstack-provision[aws]"
    )

from webstack.compilation.compiler import CompilationError, CompiledTopology, Compiler
from webstack.core.outputs import Attribute
from webstack.core.pipeline import BuildAction, DeployAction, SourceAction
from webstack.core.secrets import SecretReference, SecretStore, resolve_secret
from webstack.core.security import Direction, SecurityRule
from webstack.errors import WebstackError

if TYPE_CHECKING:
    from webstack.core.compute import Instance
    from webstack.core.deployment import ServerDeploymentGroup
    from webstack.core.identity import Identity
    from webstack.core.network import Network
    from webstack.core.pipeline import BuildProject, Pipeline
    from webstack.core.security import SecurityPerimeter
    from webstack.core.topology import Topology

logger = logging.getLogger(__name__)

MAX_TAG_GROUPS = 3


def _logical(*parts: str) -> str:
    return "-".join(parts).replace("_", "-")


def _trust_policy(service: str) -> str:
    return json.dumps({
        "Version": "2012-10-17",
        "Statement": [{
            "Effect": "Allow",
            "Principal": {"Service": service},
            "Action": "sts:AssumeRole"
        }]
    })


class PulumiCompiler(Compiler):
    """
    Compiles a topology into AWS resources through pulumi_aws.

    Example (inside a Pulumi program):
        topology = python_web_topology(config, settings)
        compiled = PulumiCompiler().compile(topology)

    With a secret store, every referenced secret is resolved before any
    resource is created, so a missing secret aborts realization early.
    Without one, secrets are read through the Secrets Manager data source at
    deploy time.
    """

    def __init__(self, secret_store: SecretStore | None = None):
        self.secret_store = secret_store
        self._resources: dict[str, Any] = {}

    def compile(self, topology: 'Topology') -> CompiledTopology:
        plan = topology.synthesize()
        if self.secret_store is not None:
            topology.check_secrets(self.secret_store)

        self._resources = {}
        try:
            import pulumi_aws as aws
        except ImportError:
            raise CompilationError(
                "pulumi-aws required for PulumiCompiler. "
                "Install with: pip install webstack-provision[aws]"
            )

        try:
            tags = dict(topology.settings.tags)

            roles = {
                identity.name: self._compile_identity(aws, identity, tags)
                for identity in topology.identities
            }
            vpcs = {
                network.name: self._compile_network(aws, network, tags)
                for network in topology.networks
            }
            groups = {
                perimeter.name: self._compile_perimeter(aws, perimeter, vpcs, tags)
                for perimeter in topology.perimeters
            }
            instances = {
                instance.name: self._compile_instance(aws, instance, roles, groups, tags)
                for instance in topology.instances
            }

            deployment_groups = {}
            for group in topology.deployment_groups:
                if not topology.deployment_targets(group):
                    logger.warning(
                        "Deployment group '%s' matches no instances; deployments will be inert",
                        group.name
                    )
                deployment_groups[group.name] = self._compile_deployment_group(aws, group, tags)

            for pipeline in topology.pipelines:
                self._compile_pipeline(aws, pipeline, deployment_groups, tags)

            outputs = self._export_outputs(topology, instances)

        except WebstackError:
            raise
        except CompilationError:
            raise
        except Exception as e:
            raise CompilationError(f"Failed to compile topology '{topology.name}': {e}") from e

        return CompiledTopology(
            topology_name=topology.name,
            resources=dict(self._resources),
            outputs=outputs,
            metadata={
                **plan.metadata,
                "pulumi_resource_count": len(self._resources),
            },
        )

    def _track(self, name: str, resource: Any) -> Any:
        self._resources[name] = resource
        return resource

    def _compile_identity(self, aws, identity: 'Identity', tags: dict[str, str]):
        """Role, managed policy attachments and instance profile."""
        role_name = _logical(identity.name)
        role = self._track(role_name, aws.iam.Role(
            role_name,
            assume_role_policy=json.dumps(identity.assumed_by.trust_policy()),
            tags=tags,
        ))
        for index, policy in enumerate(identity.managed_policies):
            attachment_name = _logical(identity.name, "policy", str(index))
            self._track(attachment_name, aws.iam.RolePolicyAttachment(
                attachment_name,
                role=role.name,
                policy_arn=policy.arn,
            ))
        profile_name = _logical(identity.name, "profile")
        profile = self._track(profile_name, aws.iam.InstanceProfile(
            profile_name,
            role=role.name,
            tags=tags,
        ))
        return role, profile

    def _compile_network(self, aws, network: 'Network', tags: dict[str, str]):
        """VPC, subnets and, for public subnets, the internet route."""
        vpc_name = _logical(network.name)
        vpc = self._track(vpc_name, aws.ec2.Vpc(
            vpc_name,
            cidr_block=str(network.cidr),
            enable_dns_hostnames=True,
            enable_dns_support=True,
            tags={**tags, "Name": network.name},
        ))

        public_route_table = None
        if network.has_public_subnets:
            igw_name = _logical(network.name, "igw")
            igw = self._track(igw_name, aws.ec2.InternetGateway(
                igw_name,
                vpc_id=vpc.id,
                tags={**tags, "Name": network.name},
            ))
            rt_name = _logical(network.name, "public-rt")
            public_route_table = self._track(rt_name, aws.ec2.RouteTable(
                rt_name,
                vpc_id=vpc.id,
                routes=[aws.ec2.RouteTableRouteArgs(
                    cidr_block="0.0.0.0/0",
                    gateway_id=igw.id,
                )],
                tags=tags,
            ))

        subnets = {}
        for subnet in network.subnets:
            subnet_name = _logical(network.name, subnet.name)
            resource = self._track(subnet_name, aws.ec2.Subnet(
                subnet_name,
                vpc_id=vpc.id,
                cidr_block=str(subnet.cidr),
                availability_zone=subnet.availability_zone,
                map_public_ip_on_launch=subnet.is_public,
                tags={**tags, "Name": subnet.name, "subnet-type": subnet.subnet_type.value},
            ))
            subnets[subnet.name] = resource
            if subnet.is_public:
                assoc_name = _logical(subnet_name, "rta")
                self._track(assoc_name, aws.ec2.RouteTableAssociation(
                    assoc_name,
                    subnet_id=resource.id,
                    route_table_id=public_route_table.id,
                ))

        return vpc, subnets

    def _rule_args(self, aws, rule: SecurityRule):
        args_type = (
            aws.ec2.SecurityGroupIngressArgs
            if rule.direction is Direction.INGRESS
            else aws.ec2.SecurityGroupEgressArgs
        )
        return args_type(
            protocol=rule.port.protocol.value,
            from_port=rule.port.from_port,
            to_port=rule.port.to_port,
            cidr_blocks=[rule.peer.cidr],
            description=rule.description or None,
        )

    def _compile_perimeter(self, aws, perimeter: 'SecurityPerimeter', vpcs, tags: dict[str, str]):
        vpc, _ = vpcs[perimeter.network.name]
        sg_name = _logical(perimeter.name)
        return self._track(sg_name, aws.ec2.SecurityGroup(
            sg_name,
            vpc_id=vpc.id,
            description=perimeter.description or f"{perimeter.name} security group",
            ingress=[self._rule_args(aws, r) for r in perimeter.ingress_rules],
            egress=[self._rule_args(aws, r) for r in perimeter.egress_rules],
            tags=tags,
        ))

    def _compile_instance(self, aws, instance: 'Instance', roles, groups, tags: dict[str, str]):
        _, profile = roles[instance.identity.name]
        subnet_name = _logical(instance.network.name, instance.subnet.name)
        subnet = self._resources[subnet_name]

        ami = aws.ssm.get_parameter_output(name=instance.image.ssm_parameter)

        instance_name = _logical(instance.name)
        resource = self._track(instance_name, aws.ec2.Instance(
            instance_name,
            ami=ami.value,
            instance_type=str(instance.instance_type),
            subnet_id=subnet.id,
            vpc_security_group_ids=[groups[p.name].id for p in instance.perimeters],
            iam_instance_profile=profile.name,
            user_data=instance.user_data or None,
            tags={**tags, **instance.tags, "Name": instance.name},
        ))

        # Attributes resolve once the engine knows the value
        resource.public_ip.apply(lambda ip: self._resolve(instance.public_ip, ip))
        resource.id.apply(lambda id_: self._resolve(instance.instance_id, id_))
        return resource

    @staticmethod
    def _resolve(attribute: Attribute, value: Any) -> Any:
        if value is not None and not attribute.is_resolved:
            attribute.resolve(value)
        return value

    def _service_role(self, aws, name: str, service: str, tags: dict[str, str], policy_arns=(), inline=None):
        role = self._track(name, aws.iam.Role(
            name,
            assume_role_policy=_trust_policy(service),
            tags=tags,
        ))
        for index, arn in enumerate(policy_arns):
            attachment_name = f"{name}-policy-{index}"
            self._track(attachment_name, aws.iam.RolePolicyAttachment(
                attachment_name,
                role=role.name,
                policy_arn=arn,
            ))
        if inline is not None:
            inline_name = f"{name}-inline"
            self._track(inline_name, aws.iam.RolePolicy(
                inline_name,
                role=role.id,
                policy=json.dumps(inline),
            ))
        return role

    def _compile_deployment_group(self, aws, group: 'ServerDeploymentGroup', tags: dict[str, str]):
        """
        Application, deployment group and the agent installation.

        Each selector key becomes its own tag group; the deployment service
        ANDs tag groups and ORs the filters inside one group.
        """
        predicate = group.selector.to_dict()
        if len(predicate) > MAX_TAG_GROUPS:
            raise CompilationError(
                f"Deployment group '{group.name}' selects on {len(predicate)} tag keys; "
                f"at most {MAX_TAG_GROUPS} are supported"
            )
        empty = [key for key, values in predicate.items() if not values]
        if empty:
            raise CompilationError(
                f"Deployment group '{group.name}' accepts no values for tag key "
                f"'{empty[0]}'"
            )

        app_name = _logical(group.application.name, "app")
        application = self._resources.get(app_name)
        if application is None:
            application = self._track(app_name, aws.codedeploy.Application(
                app_name,
                name=group.application.name,
                compute_platform="Server",
                tags=tags,
            ))

        role = self._service_role(
            aws,
            _logical(group.name, "role"),
            "codedeploy.amazonaws.com",
            tags,
            policy_arns=[p.arn for p in group.service_policies],
        )

        dg_name = _logical(group.name)
        deployment_group = self._track(dg_name, aws.codedeploy.DeploymentGroup(
            dg_name,
            app_name=application.name,
            deployment_group_name=group.name,
            service_role_arn=role.arn,
            ec2_tag_sets=[
                aws.codedeploy.DeploymentGroupEc2TagSetArgs(
                    ec2_tag_filters=[
                        aws.codedeploy.DeploymentGroupEc2TagSetEc2TagFilterArgs(
                            key=key,
                            type="KEY_AND_VALUE",
                            value=value,
                        )
                        for value in values
                    ]
                )
                for key, values in predicate.items()
            ],
            tags=tags,
        ))

        if group.install_agent:
            agent_name = _logical(group.name, "agent")
            self._track(agent_name, aws.ssm.Association(
                agent_name,
                name="AWS-ConfigureAWSPackage",
                parameters={"action": "Install", "name": "AWSCodeDeployAgent"},
                targets=[
                    aws.ssm.AssociationTargetArgs(key=f"tag:{key}", values=values)
                    for key, values in predicate.items()
                ],
            ))

        return application, deployment_group

    def _compile_build_project(self, aws, project: 'BuildProject', tags: dict[str, str]):
        role = self._service_role(
            aws,
            _logical(project.name, "role"),
            "codebuild.amazonaws.com",
            tags,
            inline={
                "Version": "2012-10-17",
                "Statement": [
                    {"Effect": "Allow", "Action": ["logs:*"], "Resource": "*"},
                    {"Effect": "Allow", "Action": ["s3:GetObject*", "s3:PutObject*", "s3:GetBucket*"], "Resource": "*"},
                ]
            },
        )
        project_name = _logical(project.name)
        return self._track(project_name, aws.codebuild.Project(
            project_name,
            service_role=role.arn,
            artifacts=aws.codebuild.ProjectArtifactsArgs(type="CODEPIPELINE"),
            environment=aws.codebuild.ProjectEnvironmentArgs(
                compute_type=project.compute_type,
                image=project.build_image,
                type="LINUX_CONTAINER",
                environment_variables=[
                    aws.codebuild.ProjectEnvironmentEnvironmentVariableArgs(name=k, value=v)
                    for k, v in project.environment_variables.items()
                ],
            ),
            source=aws.codebuild.ProjectSourceArgs(
                type="CODEPIPELINE",
                buildspec=project.buildspec,
            ),
            tags=tags,
        ))

    def _secret_value(self, aws, reference: SecretReference):
        if self.secret_store is not None:
            return pulumi.Output.secret(resolve_secret(reference, self.secret_store))

        version = aws.secretsmanager.get_secret_version_output(secret_id=reference.secret_id)
        value = version.secret_string
        if reference.json_field is not None:
            field = reference.json_field
            value = value.apply(lambda s: json.loads(s)[field])
        return pulumi.Output.secret(value)

    def _action_configuration(self, aws, action, projects, deployment_groups) -> dict[str, Any]:
        if isinstance(action, SourceAction):
            configuration: dict[str, Any] = dict(action.configuration())
            configuration["OAuthToken"] = self._secret_value(aws, action.oauth_token)
            return configuration
        if isinstance(action, BuildAction):
            return {"ProjectName": projects[action.project.name].name}
        if isinstance(action, DeployAction):
            application, group = deployment_groups[action.deployment_group.name]
            return {
                "ApplicationName": application.name,
                "DeploymentGroupName": group.deployment_group_name,
            }
        return dict(action.configuration())

    def _compile_pipeline(self, aws, pipeline: 'Pipeline', deployment_groups, tags: dict[str, str]):
        bucket_name = _logical(pipeline.name, "artifacts")
        bucket = self._track(bucket_name, aws.s3.BucketV2(
            bucket_name.lower(),
            force_destroy=True,
            tags=tags,
        ))

        projects = {
            project.name: self._compile_build_project(aws, project, tags)
            for project in pipeline.build_projects
        }

        role = self._service_role(
            aws,
            _logical(pipeline.name, "role"),
            "codepipeline.amazonaws.com",
            tags,
            inline={
                "Version": "2012-10-17",
                "Statement": [
                    {"Effect": "Allow", "Action": ["s3:*"], "Resource": "*"},
                    {"Effect": "Allow", "Action": ["codebuild:BatchGetBuilds", "codebuild:StartBuild"], "Resource": "*"},
                    {"Effect": "Allow", "Action": ["codedeploy:*"], "Resource": "*"},
                ]
            },
        )

        stages = []
        for stage in pipeline.stages:
            actions = []
            for action in stage.actions:
                actions.append(aws.codepipeline.PipelineStageActionArgs(
                    name=action.name,
                    category=action.kind.value,
                    owner=action.owner,
                    provider=action.provider,
                    version="1",
                    run_order=action.run_order,
                    input_artifacts=[a.name for a in action.inputs],
                    output_artifacts=[a.name for a in action.outputs],
                    configuration=self._action_configuration(aws, action, projects, deployment_groups),
                ))
            stages.append(aws.codepipeline.PipelineStageArgs(name=stage.name, actions=actions))

        pipeline_name = _logical(pipeline.name, "pipeline")
        return self._track(pipeline_name, aws.codepipeline.Pipeline(
            pipeline_name,
            name=pipeline.name,
            role_arn=role.arn,
            artifact_stores=[aws.codepipeline.PipelineArtifactStoreArgs(
                location=bucket.bucket,
                type="S3",
            )],
            stages=stages,
            tags=tags,
        ))

    def _export_outputs(self, topology: 'Topology', instances) -> dict[str, Any]:
        """Export every declared output, mapping attributes onto resource outputs."""
        outputs: dict[str, Any] = {}
        for name, resolver in topology.outputs.declared().items():
            if isinstance(resolver, Attribute):
                resource = instances.get(resolver.owner)
                if resource is None:
                    raise CompilationError(
                        f"Output '{name}' reads {resolver} of an unknown resource"
                    )
                value = resource.id if resolver.name == "instance_id" else getattr(resource, resolver.name)
            else:
                value = topology.outputs.resolve(name)
            pulumi.export(name, value)
            outputs[name] = value
        return outputs
