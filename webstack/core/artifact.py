"""
Artifact: an opaque data handle passed between pipeline actions.

An Artifact is produced by exactly one action and may be consumed by any
number of later actions. Callers create an Artifact, hand it to the producing
action as an output and pass the same object to every consumer; nothing is
propagated implicitly.
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

from webstack.errors import ConfigurationError

if TYPE_CHECKING:
    from webstack.core.pipeline import Action

_tokens = itertools.count(1)


class Artifact:
    """
    A named pipeline artifact.

    Example:
        source_output = Artifact()
        source = SourceAction(name="GithubSource", ..., output=source_output)
        build = BuildAction(name="TestPython", ..., input=source_output)

    Unnamed artifacts are named after their producer when it is bound
    ("Artifact_<stage>_<action>").
    """

    def __init__(self, name: str | None = None):
        self.token = next(_tokens)
        self._name = name
        self._producer: Action | None = None

    @property
    def name(self) -> str:
        if self._name is not None:
            return self._name
        return f"Artifact_{self.token}"

    @property
    def producer(self) -> Action | None:
        return self._producer

    @property
    def is_produced(self) -> bool:
        return self._producer is not None

    def check_producer(self, action: Action) -> None:
        """Raise if binding action as producer would give this artifact a second producer."""
        if self._producer is not None and self._producer is not action:
            raise ConfigurationError(
                f"Artifact '{self.name}' is produced by multiple actions: "
                f"'{self._producer.name}' and '{action.name}'"
            )

    def bind_producer(self, action: Action, stage_name: str) -> None:
        self.check_producer(action)
        self._producer = action
        if self._name is None:
            self._name = f"Artifact_{stage_name}_{action.name}"

    def __hash__(self):
        return hash(self.token)

    def __eq__(self, other):
        if not isinstance(other, Artifact):
            return False
        return self.token == other.token

    def __repr__(self):
        producer = f", producer={self._producer.name}" if self._producer else ""
        return f"Artifact({self.name}{producer})"
