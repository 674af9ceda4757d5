"""
Action graph for pipelines.

Nodes are pipeline actions keyed by "<stage>/<action>". Edges come in two
kinds: artifact edges (producer -> consumer) and stage edges, which connect
each run-order group to the next one so that a stage starts only after the
previous one has completed.
"""

from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from collections import defaultdict, deque

from webstack.errors import ConfigurationError

ARTIFACT_EDGE = "artifact"
STAGE_EDGE = "stage"


@dataclass
class ActionNode:
    """A node in the action graph."""

    key: str
    action: Any
    stage: str
    dependencies: List[str] = field(default_factory=list)
    dependents: List[str] = field(default_factory=list)


class ActionGraph:
    """
    Directed acyclic graph of pipeline actions.

    Provides:
    1. Dependency lookup
    2. Topological sorting
    3. Cycle detection
    4. Execution levels (what may run concurrently)
    """

    def __init__(self):
        self.nodes: Dict[str, ActionNode] = {}
        self._adjacency_list: Dict[str, List[str]] = defaultdict(list)
        self._edge_kinds: Dict[tuple[str, str], set[str]] = defaultdict(set)

    def add_node(self, key: str, action: Any, stage: str) -> None:
        if key in self.nodes:
            raise ConfigurationError(f"Action '{key}' is already in the graph")
        self.nodes[key] = ActionNode(key=key, action=action, stage=stage)

    def add_edge(self, from_key: str, to_key: str, kind: str = ARTIFACT_EDGE) -> None:
        """
        Add an edge meaning to_key may only start after from_key completes.

        Adding the same edge with a second kind records the kind but not a
        second edge.
        """
        if from_key not in self.nodes or to_key not in self.nodes:
            raise ConfigurationError("Both actions must exist in the graph before adding an edge")

        edge = (from_key, to_key)
        if edge not in self._edge_kinds:
            self._adjacency_list[from_key].append(to_key)
            self.nodes[to_key].dependencies.append(from_key)
            self.nodes[from_key].dependents.append(to_key)
        self._edge_kinds[edge].add(kind)

    def edge_kinds(self, from_key: str, to_key: str) -> set[str]:
        return set(self._edge_kinds.get((from_key, to_key), set()))

    def get_dependencies(self, key: str) -> List[str]:
        return list(self.nodes[key].dependencies) if key in self.nodes else []

    def get_dependents(self, key: str) -> List[str]:
        return list(self.nodes[key].dependents) if key in self.nodes else []

    def topological_sort(self) -> List[str]:
        """
        Return a topological ordering, stable with respect to insertion order.

        Raises:
            ConfigurationError: If the graph contains cycles
        """
        in_degree = {key: 0 for key in self.nodes}
        for key in self.nodes:
            for dependent in self._adjacency_list[key]:
                in_degree[dependent] += 1

        queue = deque([key for key, degree in in_degree.items() if degree == 0])
        result = []

        while queue:
            key = queue.popleft()
            result.append(key)
            for dependent in self._adjacency_list[key]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(result) != len(self.nodes):
            raise ConfigurationError("Action graph contains cycles - cannot order actions")

        return result

    def detect_cycles(self) -> Optional[List[str]]:
        """
        Returns:
            A cycle path if one exists, None otherwise
        """
        visited = set()
        rec_stack = set()
        path = []

        def dfs(key: str) -> Optional[List[str]]:
            visited.add(key)
            rec_stack.add(key)
            path.append(key)

            for neighbor in self._adjacency_list[key]:
                if neighbor not in visited:
                    cycle = dfs(neighbor)
                    if cycle:
                        return cycle
                elif neighbor in rec_stack:
                    cycle_start = path.index(neighbor)
                    return path[cycle_start:] + [neighbor]

            path.pop()
            rec_stack.remove(key)
            return None

        for key in self.nodes:
            if key not in visited:
                cycle = dfs(key)
                if cycle:
                    return cycle

        return None

    def get_execution_levels(self) -> List[List[str]]:
        """
        Group actions into levels; actions in one level may run concurrently.

        Each action is placed one level after its deepest dependency.
        """
        depth: Dict[str, int] = {}
        levels: List[List[str]] = []

        for key in self.topological_sort():
            dependencies = self.nodes[key].dependencies
            level_idx = max((depth[d] + 1 for d in dependencies), default=0)
            depth[key] = level_idx

            while len(levels) <= level_idx:
                levels.append([])
            levels[level_idx].append(key)

        return levels

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [
                {
                    "key": node.key,
                    "stage": node.stage,
                    "dependencies": node.dependencies,
                    "dependents": node.dependents,
                }
                for node in self.nodes.values()
            ],
            "edges": [
                {"from": from_key, "to": to_key, "kinds": sorted(kinds)}
                for (from_key, to_key), kinds in self._edge_kinds.items()
            ],
        }

    def __repr__(self) -> str:
        return f"ActionGraph(nodes={len(self.nodes)}, edges={len(self._edge_kinds)})"
