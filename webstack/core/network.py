"""
NetworkTopology: a virtual network partitioned into subnets across zones.

Subnet ranges are allocated deterministically from the declaration order of
the subnet specs: the first spec in the first zone receives the lowest block.
"""

import ipaddress
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from webstack.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CIDR = "10.0.0.0/16"
MIN_SUBNET_MASK = 16
MAX_SUBNET_MASK = 28


class SubnetType(str, Enum):
    """Placement type of a subnet."""

    PUBLIC = "public"
    PRIVATE_WITH_EGRESS = "private_with_egress"
    PRIVATE_ISOLATED = "private_isolated"


@dataclass(frozen=True)
class SubnetSpec:
    """Declaration of one subnet group: one subnet per availability zone."""

    name: str
    cidr_mask: int
    subnet_type: SubnetType = SubnetType.PUBLIC


@dataclass(frozen=True)
class Subnet:
    """An allocated network partition."""

    name: str
    group: str
    cidr: ipaddress.IPv4Network
    subnet_type: SubnetType
    availability_zone: str

    @property
    def is_public(self) -> bool:
        return self.subnet_type is SubnetType.PUBLIC

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "group": self.group,
            "cidr_block": str(self.cidr),
            "type": self.subnet_type.value,
            "availability_zone": self.availability_zone,
        }


@dataclass(frozen=True)
class Network:
    """A virtual network and its allocated subnets."""

    name: str
    cidr: ipaddress.IPv4Network
    subnets: tuple[Subnet, ...]
    availability_zones: tuple[str, ...]

    def subnets_of(self, subnet_type: SubnetType) -> list[Subnet]:
        """Subnets of the given type, in declaration order."""
        return [s for s in self.subnets if s.subnet_type is subnet_type]

    def get_subnet(self, name: str) -> Subnet | None:
        for subnet in self.subnets:
            if subnet.name == name:
                return subnet
        return None

    @property
    def has_public_subnets(self) -> bool:
        return any(s.is_public for s in self.subnets)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "network",
            "name": self.name,
            "cidr_block": str(self.cidr),
            "availability_zones": list(self.availability_zones),
            "subnets": [s.to_dict() for s in self.subnets],
        }


def _parse_cidr(cidr: str) -> ipaddress.IPv4Network:
    try:
        return ipaddress.IPv4Network(cidr, strict=True)
    except (ipaddress.AddressValueError, ipaddress.NetmaskValueError, ValueError) as e:
        raise ConfigurationError(f"Malformed CIDR block '{cidr}': {e}") from e


def define_network(
    name: str,
    subnet_specs: Sequence[SubnetSpec],
    availability_zones: Sequence[str],
    cidr: str = DEFAULT_CIDR,
) -> Network:
    """
    Define a network and allocate one subnet per subnet spec per availability zone.

    Args:
        name: Network name
        subnet_specs: Subnet groups, in allocation order
        availability_zones: Zones to spread every group across
        cidr: Network CIDR block

    Returns:
        Network with pairwise-disjoint subnets inside the network block

    Raises:
        ConfigurationError: On malformed CIDR, bad masks, colliding names,
            bad zone lists or insufficient address space
    """
    network_cidr = _parse_cidr(cidr)

    zones = tuple(availability_zones)
    if not zones:
        raise ConfigurationError(f"Network '{name}' needs at least one availability zone")
    if len(set(zones)) != len(zones):
        raise ConfigurationError(f"Network '{name}' lists an availability zone twice")

    seen: set[str] = set()
    for spec in subnet_specs:
        if spec.name in seen:
            raise ConfigurationError(
                f"Subnet name '{spec.name}' is declared twice in network '{name}'"
            )
        seen.add(spec.name)
        if not MIN_SUBNET_MASK <= spec.cidr_mask <= MAX_SUBNET_MASK:
            raise ConfigurationError(
                f"Subnet '{spec.name}' mask /{spec.cidr_mask} is outside "
                f"/{MIN_SUBNET_MASK}-/{MAX_SUBNET_MASK}"
            )
        if spec.cidr_mask < network_cidr.prefixlen:
            raise ConfigurationError(
                f"Subnet '{spec.name}' mask /{spec.cidr_mask} is wider than "
                f"network block {network_cidr}"
            )

    base = int(network_cidr.network_address)
    end = int(network_cidr.broadcast_address)
    cursor = base
    subnets: list[Subnet] = []
    names: set[str] = set()

    for spec in subnet_specs:
        size = 2 ** (32 - spec.cidr_mask)
        for index, zone in enumerate(zones, start=1):
            # Align to the block size of this mask
            offset = cursor - base
            if offset % size:
                cursor = base + (offset // size + 1) * size
            if cursor + size - 1 > end:
                raise ConfigurationError(
                    f"Network {network_cidr} has no room for subnet group "
                    f"'{spec.name}' (/{spec.cidr_mask} x {len(zones)} zones)"
                )

            subnet_name = f"{spec.name}Subnet{index}"
            if subnet_name in names:
                raise ConfigurationError(
                    f"Subnet name '{subnet_name}' collides in network '{name}'"
                )
            names.add(subnet_name)

            block = ipaddress.IPv4Network((cursor, spec.cidr_mask))
            subnets.append(Subnet(
                name=subnet_name,
                group=spec.name,
                cidr=block,
                subnet_type=spec.subnet_type,
                availability_zone=zone,
            ))
            logger.debug("Allocated %s -> %s in %s", subnet_name, block, zone)
            cursor += size

    return Network(
        name=name,
        cidr=network_cidr,
        subnets=tuple(subnets),
        availability_zones=zones,
    )
