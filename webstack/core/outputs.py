"""
OutputExporter: named values surfaced from a realized topology.

Values such as an instance's public address exist only after a backend has
created the resource. They are modelled as Attributes that start unresolved
and are resolved exactly once.
"""

import logging
from typing import Any, Callable, Union

from webstack.errors import UnresolvedAttributeError

logger = logging.getLogger(__name__)


class Attribute:
    """
    A value of a resource that is only known after realization.

    Example:
        ip = instance.public_ip
        ip.is_resolved          # False
        ip.resolve("203.0.113.10")
        ip.get()                # "203.0.113.10"
    """

    def __init__(self, owner: str, name: str):
        self.owner = owner
        self.name = name
        self._value: Any = None
        self._resolved = False

    @property
    def is_resolved(self) -> bool:
        return self._resolved

    def resolve(self, value: Any) -> None:
        """Record the realized value. Called by a provisioning backend."""
        if value is None:
            raise UnresolvedAttributeError(
                f"Cannot resolve {self} to an empty value"
            )
        self._value = value
        self._resolved = True

    def get(self) -> Any:
        if not self._resolved:
            raise UnresolvedAttributeError(f"{self} has not been resolved yet")
        return self._value

    def __call__(self) -> Any:
        return self.get()

    def __repr__(self):
        return f"Attribute({self.owner}.{self.name})"


Resolver = Union[Attribute, Callable[[], Any]]


class OutputExporter:
    """
    Registry of exported outputs. Re-exporting a name replaces the earlier export.
    """

    def __init__(self):
        self._declared: dict[str, Resolver] = {}
        self._values: dict[str, Any] = {}

    def declare(self, name: str, resolver: Resolver) -> None:
        """Record an export to be resolved after realization."""
        if name in self._declared:
            logger.debug("Output '%s' redeclared; last declaration wins", name)
        self._declared[name] = resolver
        self._values.pop(name, None)

    def export_value(self, name: str, resolver: Resolver) -> Any:
        """
        Export a value under name, resolving it now.

        Returns:
            The resolved value

        Raises:
            UnresolvedAttributeError: If the value is not available yet; an
                earlier export under name is kept
        """
        value = self._evaluate(name, resolver)
        self.declare(name, resolver)
        self._values[name] = value
        return value

    def resolve(self, name: str) -> Any:
        if name not in self._declared:
            raise KeyError(f"No output named '{name}'")
        value = self._evaluate(name, self._declared[name])
        self._values[name] = value
        return value

    @staticmethod
    def _evaluate(name: str, resolver: Resolver) -> Any:
        value = resolver()
        if value is None:
            raise UnresolvedAttributeError(f"Output '{name}' resolved to no value")
        return value

    def resolve_all(self) -> dict[str, Any]:
        """Resolve every declared output, failing on the first unresolved one."""
        return {name: self.resolve(name) for name in self._declared}

    def declared(self) -> dict[str, Resolver]:
        return dict(self._declared)

    @property
    def values(self) -> dict[str, Any]:
        """Values resolved so far."""
        return dict(self._values)

    def __contains__(self, name: str) -> bool:
        return name in self._declared

    def __len__(self) -> int:
        return len(self._declared)
