"""
Topology: the aggregate of everything a deployment provisions.

A Topology holds identities, networks, security perimeters, instances,
pipelines, deployment groups and exported outputs. Each part is built on its
own and added explicitly; synthesize() validates the whole graph in one pass
and yields a SynthesizedTopology plan, or raises without returning anything
partial.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import yaml

from webstack.core.compute import Instance
from webstack.core.deployment import ServerApplication, ServerDeploymentGroup
from webstack.core.identity import Identity
from webstack.core.network import Network
from webstack.core.outputs import OutputExporter, Resolver
from webstack.core.pipeline import Pipeline
from webstack.core.secrets import SecretStore, resolve_secret
from webstack.core.security import SecurityPerimeter
from webstack.errors import ConfigurationError
from webstack.settings import ProvisionSettings

logger = logging.getLogger(__name__)

PIPELINE_OPTIONS = frozenset({"cross_account_keys", "restart_execution_on_update"})


def _add_unique(registry: dict[str, Any], kind: str, name: str, item: Any) -> Any:
    existing = registry.get(name)
    if existing is not None and existing is not item:
        raise ConfigurationError(f"A {kind} named '{name}' is already defined")
    registry[name] = item
    return item


@dataclass
class Topology:
    """
    Container for all resources of one deployment.

    Example:
        topology = Topology(name="python-web", settings=ProvisionSettings())

        vpc = topology.add_network(define_network("vpc", specs, zones))
        role = topology.add_identity(define_identity("ec2Role", principal))
        web = topology.add_instance(define_instance("web_server", vpc, ...))

        pipeline = topology.pipeline("python-webApp")
        ...

        topology.export("IP Address", web.public_ip)
        plan = topology.synthesize()
    """

    name: str
    """Topology name"""

    settings: ProvisionSettings = field(default_factory=ProvisionSettings)
    """Provisioning target"""

    outputs: OutputExporter = field(default_factory=OutputExporter)
    """Exported outputs"""

    _identities: dict[str, Identity] = field(default_factory=dict)
    _networks: dict[str, Network] = field(default_factory=dict)
    _perimeters: dict[str, SecurityPerimeter] = field(default_factory=dict)
    _instances: dict[str, Instance] = field(default_factory=dict)
    _pipelines: dict[str, Pipeline] = field(default_factory=dict)
    _applications: dict[str, ServerApplication] = field(default_factory=dict)
    _deployment_groups: dict[str, ServerDeploymentGroup] = field(default_factory=dict)

    def add_identity(self, identity: Identity) -> Identity:
        return _add_unique(self._identities, "identity", identity.name, identity)

    def add_network(self, network: Network) -> Network:
        return _add_unique(self._networks, "network", network.name, network)

    def add_perimeter(self, perimeter: SecurityPerimeter) -> SecurityPerimeter:
        return _add_unique(self._perimeters, "security perimeter", perimeter.name, perimeter)

    def add_instance(self, instance: Instance) -> Instance:
        return _add_unique(self._instances, "instance", instance.name, instance)

    def add_deployment_group(self, group: ServerDeploymentGroup) -> ServerDeploymentGroup:
        """Add a group; its application is registered once per name."""
        _add_unique(self._deployment_groups, "deployment group", group.name, group)
        self._applications.setdefault(group.application.name, group.application)
        return group

    def add_pipeline(self, pipeline: Pipeline) -> Pipeline:
        """
        Add a pipeline. Re-adding a name replaces the earlier definition.
        """
        if pipeline.name in self._pipelines and self._pipelines[pipeline.name] is not pipeline:
            logger.info("Pipeline '%s' redefined; updating existing definition", pipeline.name)
        self._pipelines[pipeline.name] = pipeline
        return pipeline

    def pipeline(self, name: str, **options) -> Pipeline:
        """
        Get the pipeline called name, creating it if needed.

        Options given for an existing pipeline update it in place.

        Raises:
            ConfigurationError: For anything but the pipeline's constructor
                options; the pipeline is left unchanged
        """
        unknown = sorted(set(options) - PIPELINE_OPTIONS)
        if unknown:
            raise ConfigurationError(f"Unknown pipeline option '{unknown[0]}'")

        existing = self._pipelines.get(name)
        if existing is None:
            return self.add_pipeline(Pipeline(name=name, **options))
        for key, value in options.items():
            setattr(existing, key, value)
        return existing

    def export(self, name: str, resolver: Resolver) -> None:
        """Declare an output resolved after realization. Last declaration wins."""
        self.outputs.declare(name, resolver)

    @property
    def identities(self) -> list[Identity]:
        return list(self._identities.values())

    @property
    def networks(self) -> list[Network]:
        return list(self._networks.values())

    @property
    def perimeters(self) -> list[SecurityPerimeter]:
        return list(self._perimeters.values())

    @property
    def instances(self) -> list[Instance]:
        return list(self._instances.values())

    @property
    def pipelines(self) -> list[Pipeline]:
        return list(self._pipelines.values())

    @property
    def applications(self) -> list[ServerApplication]:
        return list(self._applications.values())

    @property
    def deployment_groups(self) -> list[ServerDeploymentGroup]:
        return list(self._deployment_groups.values())

    def get_instance(self, name: str) -> Instance | None:
        return self._instances.get(name)

    def get_pipeline(self, name: str) -> Pipeline | None:
        return self._pipelines.get(name)

    def deployment_targets(self, group: ServerDeploymentGroup) -> list[Instance]:
        """Instances of this topology that group deploys to; may be empty."""
        return group.targets(self.instances)

    def check_secrets(self, store: SecretStore) -> None:
        """
        Resolve every secret the pipelines reference.

        Raises:
            SecretResolutionError: For the first secret missing from store
        """
        for pipeline in self.pipelines:
            for reference in pipeline.secrets():
                resolve_secret(reference, store)

    def validate(self) -> bool:
        """
        Validate cross-resource references.

        Raises:
            ConfigurationError: On references to resources outside this topology
                or on an invalid pipeline
        """
        for perimeter in self.perimeters:
            if perimeter.network not in self.networks:
                raise ConfigurationError(
                    f"Perimeter '{perimeter.name}' uses network '{perimeter.network.name}' "
                    f"which is not part of topology '{self.name}'"
                )

        for instance in self.instances:
            if instance.network not in self.networks:
                raise ConfigurationError(
                    f"Instance '{instance.name}' uses network '{instance.network.name}' "
                    f"which is not part of topology '{self.name}'"
                )
            if self._identities.get(instance.identity.name) is not instance.identity:
                raise ConfigurationError(
                    f"Instance '{instance.name}' uses identity '{instance.identity.name}' "
                    f"which is not part of topology '{self.name}'"
                )
            for perimeter in instance.perimeters:
                if self._perimeters.get(perimeter.name) is not perimeter:
                    raise ConfigurationError(
                        f"Instance '{instance.name}' uses perimeter '{perimeter.name}' "
                        f"which is not part of topology '{self.name}'"
                    )

        for pipeline in self.pipelines:
            pipeline.validate()
            for group in pipeline.deployment_groups:
                if self._deployment_groups.get(group.name) is not group:
                    raise ConfigurationError(
                        f"Pipeline '{pipeline.name}' deploys to group '{group.name}' "
                        f"which is not part of topology '{self.name}'"
                    )

        return True

    def synthesize(self) -> "SynthesizedTopology":
        """
        Validate the topology and render it into a provisioning plan.

        Resources are ordered by dependency: identities and networks, then
        perimeters, instances, deployment targets, build projects and
        pipelines.

        Raises:
            ConfigurationError: If anything is invalid; nothing is returned
        """
        self.validate()

        resources: dict[str, dict[str, Any]] = {}
        for identity in self.identities:
            resources[f"identity/{identity.name}"] = identity.to_dict()
        for network in self.networks:
            resources[f"network/{network.name}"] = network.to_dict()
        for perimeter in self.perimeters:
            resources[f"perimeter/{perimeter.name}"] = perimeter.to_dict()
        for instance in self.instances:
            resources[f"instance/{instance.name}"] = instance.to_dict()
        for application in self.applications:
            resources[f"application/{application.name}"] = {
                "type": "application",
                "name": application.name,
                "compute_platform": "Server",
            }
        for group in self.deployment_groups:
            entry = group.to_dict()
            entry["targets"] = [i.name for i in self.deployment_targets(group)]
            resources[f"deployment_group/{group.name}"] = entry
        for pipeline in self.pipelines:
            for project in pipeline.build_projects:
                resources[f"build_project/{project.name}"] = project.to_dict()
            resources[f"pipeline/{pipeline.name}"] = pipeline.to_dict()

        outputs = {
            name: repr(resolver) for name, resolver in self.outputs.declared().items()
        }

        logger.info(
            "Synthesized topology '%s' with %d resources", self.name, len(resources)
        )
        return SynthesizedTopology(
            topology_name=self.name,
            resources=resources,
            outputs=outputs,
            metadata={
                "stack_name": self.settings.stack_name,
                "region": self.settings.region,
                "availability_zones": list(self.settings.availability_zones),
                "resource_count": len(resources),
                "pipeline_count": len(self._pipelines),
            },
        )


@dataclass
class SynthesizedTopology:
    """
    A validated, serializable provisioning plan.
    """

    topology_name: str
    resources: dict[str, dict[str, Any]]
    outputs: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def get_resource(self, key: str) -> dict[str, Any] | None:
        return self.resources.get(key)

    def list_resources(self) -> list[str]:
        return list(self.resources.keys())

    def resources_of_type(self, resource_type: str) -> list[dict[str, Any]]:
        return [r for r in self.resources.values() if r.get("type") == resource_type]

    def to_dict(self) -> dict[str, Any]:
        return {
            "topology": self.topology_name,
            "metadata": self.metadata,
            "resources": self.resources,
            "outputs": self.outputs,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False)
