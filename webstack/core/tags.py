"""
Resource tags and tag-based target selection.

Tags label instances with key/value pairs. A TargetSelector is a predicate
over those tags: an instance matches iff, for every key in the selector, the
instance's value for that key is one of the accepted values. Keys absent
from the selector are unconstrained (AND across keys, OR within a key). A key
with no accepted values matches nothing.
"""

import logging
from typing import Iterable, Mapping

from webstack.core.compute import Instance
from webstack.errors import ConfigurationError

logger = logging.getLogger(__name__)


def tag(instance: Instance, key: str, value: str) -> None:
    """Set one tag. Setting an existing key overwrites it."""
    instance.set_tag(key, value)


def apply_tags(instance: Instance, tags: Mapping[str, str]) -> None:
    """Set every tag in tags on instance."""
    for key, value in tags.items():
        instance.set_tag(key, value)


class TargetSelector:
    """
    Tag predicate mapping each key to a set of accepted values.

    Example:
        selector = TargetSelector({
            "application-name": ["python-web"],
            "stage": ["prod", "stage"],
        })
        selector.matches({"application-name": "python-web", "stage": "prod"})  # True
    """

    def __init__(self, predicate: Mapping[str, Iterable[str]]):
        accepted: dict[str, frozenset[str]] = {}
        for key, values in predicate.items():
            if isinstance(values, str):
                values = [values]
            value_set = frozenset(values)
            if not key:
                raise ConfigurationError("Target selector keys must not be empty")
            accepted[key] = value_set
        self._predicate = accepted

    @property
    def predicate(self) -> dict[str, frozenset[str]]:
        return dict(self._predicate)

    @property
    def keys(self) -> list[str]:
        return list(self._predicate)

    def matches(self, tags: Mapping[str, str]) -> bool:
        for key, accepted in self._predicate.items():
            if key not in tags or tags[key] not in accepted:
                return False
        return True

    def with_value(self, key: str, value: str) -> "TargetSelector":
        """Return a selector that also accepts value for key."""
        predicate = {k: set(v) for k, v in self._predicate.items()}
        predicate.setdefault(key, set()).add(value)
        return TargetSelector(predicate)

    def to_dict(self) -> dict[str, list[str]]:
        return {key: sorted(values) for key, values in self._predicate.items()}

    def __eq__(self, other):
        if not isinstance(other, TargetSelector):
            return False
        return self._predicate == other._predicate

    def __hash__(self):
        return hash(frozenset(self._predicate.items()))

    def __repr__(self):
        return f"TargetSelector({self.to_dict()})"


def select_targets(
    instances: Iterable[Instance],
    selector: TargetSelector | Mapping[str, Iterable[str]],
) -> list[Instance]:
    """
    Return the instances whose tags satisfy selector, in input order.

    An empty result is valid: the deployment simply has nothing to target.
    """
    if not isinstance(selector, TargetSelector):
        selector = TargetSelector(selector)
    matched = [i for i in instances if selector.matches(i.tags)]
    logger.debug("Selector %s matched %d instance(s)", selector.to_dict(), len(matched))
    return matched
