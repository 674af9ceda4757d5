"""
Compiler: turns a Topology into backend resources.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from webstack.core.topology import Topology


@dataclass
class CompiledTopology:
    """
    A topology realized as backend resources.

    Contains the backend's resource objects keyed by logical name, the
    exported outputs and compilation metadata.
    """

    topology_name: str
    resources: dict[str, Any]
    outputs: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)

    def get_resource(self, name: str) -> Any | None:
        return self.resources.get(name)

    def list_resources(self) -> list[str]:
        return list(self.resources.keys())


class Compiler(ABC):
    """
    Base class for provisioning backends.

    A compiler synthesizes the topology first, so invalid declarations are
    rejected before any resource is created.
    """

    @abstractmethod
    def compile(self, topology: Topology) -> CompiledTopology:
        """
        Compile topology to backend resources.

        Raises:
            ConfigurationError: If the topology is invalid
            SecretResolutionError: If a referenced secret is missing
            CompilationError: If the backend fails
        """
        pass


class CompilationError(Exception):
    """Raised when topology compilation fails."""
    pass
