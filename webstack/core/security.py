"""
SecurityPerimeter: allow-rules for traffic in and out of a network.

A perimeter only ever grows more permissive. Rules are appended, never
removed, and there is no deny list; tightening a perimeter means defining a
new one.
"""

import ipaddress
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from webstack.core.network import Network
from webstack.errors import ConfigurationError

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    INGRESS = "ingress"
    EGRESS = "egress"


class Protocol(str, Enum):
    TCP = "tcp"
    UDP = "udp"
    ICMP = "icmp"
    ALL = "-1"


@dataclass(frozen=True)
class Peer:
    """A traffic source or destination expressed as an IPv4 CIDR block."""

    cidr: str

    def __post_init__(self):
        try:
            ipaddress.IPv4Network(self.cidr, strict=True)
        except ValueError as e:
            raise ConfigurationError(f"Malformed peer CIDR '{self.cidr}': {e}") from e

    @classmethod
    def any_ipv4(cls) -> "Peer":
        return cls("0.0.0.0/0")

    @classmethod
    def ipv4(cls, cidr: str) -> "Peer":
        return cls(cidr)


@dataclass(frozen=True)
class Port:
    """
    A protocol and inclusive port range.

    For ICMP, from_port is the ICMP type and to_port the code; -1 means all.
    """

    protocol: Protocol
    from_port: int
    to_port: int

    def __post_init__(self):
        if self.protocol is Protocol.ALL:
            return
        if self.protocol is Protocol.ICMP:
            if not (-1 <= self.from_port <= 255 and -1 <= self.to_port <= 255):
                raise ConfigurationError(
                    f"Invalid ICMP type/code {self.from_port}/{self.to_port}"
                )
            return
        if not (0 <= self.from_port <= self.to_port <= 65535):
            raise ConfigurationError(
                f"Invalid port range {self.from_port}-{self.to_port}"
            )

    @classmethod
    def tcp(cls, port: int) -> "Port":
        return cls(Protocol.TCP, port, port)

    @classmethod
    def tcp_range(cls, start: int, end: int) -> "Port":
        return cls(Protocol.TCP, start, end)

    @classmethod
    def udp(cls, port: int) -> "Port":
        return cls(Protocol.UDP, port, port)

    @classmethod
    def icmp(cls, icmp_type: int = -1, code: int = -1) -> "Port":
        return cls(Protocol.ICMP, icmp_type, code)

    @classmethod
    def all_traffic(cls) -> "Port":
        return cls(Protocol.ALL, 0, 0)

    def __str__(self):
        if self.protocol is Protocol.ALL:
            return "all"
        if self.protocol is Protocol.ICMP:
            if self.from_port == -1:
                return "icmp/all"
            return f"icmp/{self.from_port}:{self.to_port}"
        if self.from_port == self.to_port:
            return f"{self.protocol.value}/{self.from_port}"
        return f"{self.protocol.value}/{self.from_port}-{self.to_port}"


@dataclass(frozen=True)
class SecurityRule:
    """One allowed traffic flow."""

    direction: Direction
    peer: Peer
    port: Port
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction.value,
            "protocol": self.port.protocol.value,
            "from_port": self.port.from_port,
            "to_port": self.port.to_port,
            "cidr_block": self.peer.cidr,
            "description": self.description,
        }


class SecurityPerimeter:
    """
    Additive set of allow rules scoped to one network.

    There is no removal operation. The rule views are tuples.

    Example:
        web_sg = define_perimeter("web_sg", vpc, description="Inbound HTTP")
        add_ingress(web_sg, Peer.any_ipv4(), Port.tcp(80))
    """

    def __init__(
        self,
        name: str,
        network: Network,
        description: str = "",
        allow_all_outbound: bool = True,
    ):
        if not name:
            raise ConfigurationError("Security perimeter name must not be empty")
        self.name = name
        self.network = network
        self.description = description
        self.allow_all_outbound = allow_all_outbound
        self._rules: list[SecurityRule] = []

        if allow_all_outbound:
            self._rules.append(SecurityRule(
                direction=Direction.EGRESS,
                peer=Peer.any_ipv4(),
                port=Port.all_traffic(),
                description="Allow all outbound traffic by default",
            ))

    @property
    def rules(self) -> tuple[SecurityRule, ...]:
        return tuple(self._rules)

    @property
    def ingress_rules(self) -> tuple[SecurityRule, ...]:
        return tuple(r for r in self._rules if r.direction is Direction.INGRESS)

    @property
    def egress_rules(self) -> tuple[SecurityRule, ...]:
        return tuple(r for r in self._rules if r.direction is Direction.EGRESS)

    def _append(self, rule: SecurityRule) -> SecurityRule:
        for existing in self._rules:
            if (existing.direction, existing.peer, existing.port) == (
                rule.direction, rule.peer, rule.port
            ):
                return existing
        self._rules.append(rule)
        logger.debug(
            "Perimeter '%s' allows %s %s %s",
            self.name, rule.direction.value, rule.peer.cidr, rule.port
        )
        return rule

    def add_ingress(self, peer: Peer, port: Port, description: str = "") -> SecurityRule:
        """Allow inbound traffic from peer on port."""
        return self._append(SecurityRule(Direction.INGRESS, peer, port, description))

    def add_egress(self, peer: Peer, port: Port, description: str = "") -> SecurityRule:
        """
        Allow outbound traffic to peer on port.

        When the perimeter already allows all outbound traffic the rule adds
        nothing and is ignored.
        """
        rule = SecurityRule(Direction.EGRESS, peer, port, description)
        if self.allow_all_outbound:
            logger.warning(
                "Ignoring egress rule %s %s on '%s': all outbound traffic is already allowed",
                peer.cidr, port, self.name
            )
            return self._rules[0]
        return self._append(rule)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "security_perimeter",
            "name": self.name,
            "network": self.network.name,
            "description": self.description,
            "rules": [r.to_dict() for r in self._rules],
        }

    def __repr__(self):
        return f"SecurityPerimeter({self.name}, rules={len(self._rules)})"


def define_perimeter(
    name: str,
    network: Network,
    rules: Iterable[SecurityRule] = (),
    description: str = "",
    allow_all_outbound: bool = True,
) -> SecurityPerimeter:
    """Create a perimeter on network seeded with rules."""
    perimeter = SecurityPerimeter(
        name=name,
        network=network,
        description=description,
        allow_all_outbound=allow_all_outbound,
    )
    for rule in rules:
        if rule.direction is Direction.INGRESS:
            perimeter.add_ingress(rule.peer, rule.port, rule.description)
        else:
            perimeter.add_egress(rule.peer, rule.port, rule.description)
    return perimeter


def add_ingress(perimeter: SecurityPerimeter, source: Peer, port: Port) -> SecurityRule:
    """Append one inbound allow rule to perimeter."""
    return perimeter.add_ingress(source, port)
