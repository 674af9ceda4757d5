"""
ComputeInstance: a single compute node placed in a network.

An instance binds together a machine image, a size, exactly one identity,
one or more security perimeters, one subnet and a bootstrap payload that
runs once at first boot. Whatever the bootstrap script does at boot is
outside webstack's view.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from webstack.core.identity import Identity
from webstack.core.network import Network, Subnet, SubnetType
from webstack.core.outputs import Attribute
from webstack.core.security import SecurityPerimeter
from webstack.errors import ConfigurationError

logger = logging.getLogger(__name__)

EC2_SERVICE = "ec2.amazonaws.com"


class AmazonLinuxGeneration(str, Enum):
    AMAZON_LINUX_2 = "amzn2"
    AMAZON_LINUX_2023 = "al2023"


class CpuType(str, Enum):
    X86_64 = "x86_64"
    ARM_64 = "arm64"


@dataclass(frozen=True)
class MachineImage:
    """
    A machine image looked up by its public SSM parameter at realization time.
    """

    generation: AmazonLinuxGeneration = AmazonLinuxGeneration.AMAZON_LINUX_2
    cpu_type: CpuType = CpuType.X86_64

    @classmethod
    def amazon_linux(
        cls,
        generation: AmazonLinuxGeneration = AmazonLinuxGeneration.AMAZON_LINUX_2,
        cpu_type: CpuType = CpuType.X86_64,
    ) -> "MachineImage":
        return cls(generation=generation, cpu_type=cpu_type)

    @property
    def ssm_parameter(self) -> str:
        prefix = "/aws/service/ami-amazon-linux-latest"
        if self.generation is AmazonLinuxGeneration.AMAZON_LINUX_2023:
            return f"{prefix}/al2023-ami-kernel-default-{self.cpu_type.value}"
        return f"{prefix}/amzn2-ami-hvm-{self.cpu_type.value}-gp2"


@dataclass(frozen=True)
class InstanceType:
    """Instance size class, rendered as "<class>.<size>"."""

    instance_class: str
    size: str

    @classmethod
    def of(cls, instance_class: str, size: str) -> "InstanceType":
        return cls(instance_class.lower(), size.lower())

    def __str__(self):
        return f"{self.instance_class}.{self.size}"


@dataclass(frozen=True)
class SubnetSelector:
    """Picks the first subnet, in declaration order, matching the placement."""

    subnet_type: SubnetType = SubnetType.PUBLIC
    availability_zone: str | None = None

    def select(self, network: Network) -> Subnet:
        for subnet in network.subnets_of(self.subnet_type):
            if self.availability_zone is None or subnet.availability_zone == self.availability_zone:
                return subnet
        zone = f" in {self.availability_zone}" if self.availability_zone else ""
        raise ConfigurationError(
            f"Network '{network.name}' has no {self.subnet_type.value} subnet{zone}"
        )


@dataclass(frozen=True)
class BootstrapPayload:
    """Opaque boot-time script, passed verbatim to the instance."""

    script: str
    source: str | None = None

    @classmethod
    def from_file(cls, path: str | Path) -> "BootstrapPayload":
        path = Path(path)
        try:
            script = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot read bootstrap payload {path}: {e}") from e
        return cls(script=script, source=str(path))


class Instance:
    """A compute node. Tags stay mutable after creation."""

    def __init__(
        self,
        name: str,
        network: Network,
        subnet: Subnet,
        image: MachineImage,
        instance_type: InstanceType,
        identity: Identity,
        perimeters: tuple[SecurityPerimeter, ...],
    ):
        self.name = name
        self.network = network
        self.subnet = subnet
        self.image = image
        self.instance_type = instance_type
        self.identity = identity
        self.perimeters = perimeters
        self._user_data: list[BootstrapPayload] = []
        self._tags: dict[str, str] = {}

        self.public_ip = Attribute(owner=name, name="public_ip")
        self.instance_id = Attribute(owner=name, name="instance_id")

    @property
    def tags(self) -> dict[str, str]:
        """Copy of the tag map."""
        return dict(self._tags)

    @property
    def user_data(self) -> str:
        """The full boot script, payloads joined in the order they were added."""
        return "\n".join(p.script.rstrip("\n") for p in self._user_data)

    @property
    def bootstrap_payloads(self) -> tuple[BootstrapPayload, ...]:
        return tuple(self._user_data)

    def add_user_data(self, payload: BootstrapPayload | str) -> None:
        if isinstance(payload, str):
            payload = BootstrapPayload(script=payload)
        self._user_data.append(payload)

    def set_tag(self, key: str, value: str) -> None:
        if not key:
            raise ConfigurationError(f"Tag key on instance '{self.name}' must not be empty")
        self._tags[key] = value
        logger.debug("Tagged instance '%s' with %s=%s", self.name, key, value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "instance",
            "name": self.name,
            "network": self.network.name,
            "subnet": self.subnet.name,
            "availability_zone": self.subnet.availability_zone,
            "image": self.image.ssm_parameter,
            "instance_type": str(self.instance_type),
            "identity": self.identity.name,
            "security_perimeters": [p.name for p in self.perimeters],
            "user_data": self.user_data,
            "tags": dict(self._tags),
        }

    def __repr__(self):
        return f"Instance({self.name}, {self.instance_type}, subnet={self.subnet.name})"


def define_instance(
    name: str,
    network: Network,
    subnet_selector: SubnetSelector,
    image: MachineImage,
    instance_type: InstanceType,
    identity: Identity,
    perimeter: SecurityPerimeter | tuple[SecurityPerimeter, ...],
    bootstrap: BootstrapPayload | None = None,
) -> Instance:
    """
    Define a compute instance.

    Raises:
        ConfigurationError: If no subnet matches the selector, a perimeter
            belongs to another network, or the identity cannot be assumed
            by compute instances
    """
    if not name:
        raise ConfigurationError("Instance name must not be empty")
    if not isinstance(identity, Identity):
        raise ConfigurationError(f"Instance '{name}' needs exactly one Identity")
    if identity.assumed_by.service != EC2_SERVICE:
        raise ConfigurationError(
            f"Identity '{identity.name}' is assumed by {identity.assumed_by.service}, "
            f"instance '{name}' needs {EC2_SERVICE}"
        )

    perimeters = perimeter if isinstance(perimeter, tuple) else (perimeter,)
    if not perimeters:
        raise ConfigurationError(f"Instance '{name}' needs a security perimeter")
    for p in perimeters:
        if p.network is not network:
            raise ConfigurationError(
                f"Perimeter '{p.name}' belongs to network '{p.network.name}', "
                f"not '{network.name}'"
            )

    subnet = subnet_selector.select(network)
    instance = Instance(
        name=name,
        network=network,
        subnet=subnet,
        image=image,
        instance_type=instance_type,
        identity=identity,
        perimeters=perimeters,
    )
    if bootstrap is not None:
        instance.add_user_data(bootstrap)
    return instance
