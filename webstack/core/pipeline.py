"""
Pipeline: ordered stages of actions, wired together by artifacts.

Execution order is the declared stage order, then run order, then declared
action order within a stage. Stages are strictly sequential: every action of
a stage must complete before any action of the next stage starts, even when
the later action consumes nothing the earlier stage produced. Actions in one
stage that share a run order and have no artifact between them may run
concurrently.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from webstack.core.artifact import Artifact
from webstack.core.dag import ARTIFACT_EDGE, STAGE_EDGE, ActionGraph
from webstack.core.deployment import ServerDeploymentGroup
from webstack.core.secrets import SecretReference
from webstack.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    SOURCE = "Source"
    BUILD = "Build"
    DEPLOY = "Deploy"


class GitHubTrigger(str, Enum):
    WEBHOOK = "WebHook"
    POLL = "Poll"
    NONE = "None"


class LinuxBuildImage:
    """Managed build images."""

    AMAZON_LINUX_2_3 = "aws/codebuild/amazonlinux2-x86_64-standard:3.0"
    AMAZON_LINUX_2_4 = "aws/codebuild/amazonlinux2-x86_64-standard:4.0"
    AMAZON_LINUX_2_5 = "aws/codebuild/amazonlinux2-x86_64-standard:5.0"
    STANDARD_7_0 = "aws/codebuild/standard:7.0"


@dataclass(frozen=True)
class BuildProject:
    """A build project run by a Build action."""

    name: str
    build_image: str = LinuxBuildImage.AMAZON_LINUX_2_3
    compute_type: str = "BUILD_GENERAL1_SMALL"
    buildspec: str | None = None
    """Inline buildspec; None means buildspec.yml from the source artifact"""

    environment_variables: dict[str, str] = field(default_factory=dict)

    def __hash__(self):
        return hash(self.name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "build_project",
            "name": self.name,
            "build_image": self.build_image,
            "compute_type": self.compute_type,
            "buildspec": self.buildspec,
            "environment_variables": dict(self.environment_variables),
        }


class Action:
    """
    A unit of work inside a stage.

    Subclasses fix the kind and the shape of inputs and outputs.
    """

    kind: ActionKind
    owner = "AWS"
    provider = ""

    def __init__(
        self,
        name: str,
        inputs: Iterable[Artifact] = (),
        outputs: Iterable[Artifact] = (),
        run_order: int = 1,
    ):
        if not name:
            raise ConfigurationError("Action name must not be empty")
        if run_order < 1:
            raise ConfigurationError(f"Action '{name}' run_order must be >= 1")

        self.name = name
        self.inputs: tuple[Artifact, ...] = tuple(inputs)
        self.outputs: tuple[Artifact, ...] = tuple(outputs)
        self.run_order = run_order
        self._stage: Stage | None = None

        if len(set(self.outputs)) != len(self.outputs):
            raise ConfigurationError(f"Action '{name}' lists an output artifact twice")
        if set(self.inputs) & set(self.outputs):
            raise ConfigurationError(f"Action '{name}' consumes its own output")

    @property
    def stage(self) -> "Stage | None":
        return self._stage

    @property
    def key(self) -> str:
        stage = self._stage.name if self._stage else "?"
        return f"{stage}/{self.name}"

    def configuration(self) -> dict[str, str]:
        """Provider configuration; secrets appear only as references."""
        return {}

    def secrets(self) -> list[SecretReference]:
        return []

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "owner": self.owner,
            "provider": self.provider,
            "run_order": self.run_order,
            "inputs": [a.name for a in self.inputs],
            "outputs": [a.name for a in self.outputs],
            "configuration": self.configuration(),
        }

    def __repr__(self):
        return f"{type(self).__name__}({self.key})"


class SourceAction(Action):
    """
    Pull source from a GitHub repository.

    Produces exactly one artifact and accepts no input. The OAuth token must
    be a SecretReference; literal tokens are rejected.
    """

    kind = ActionKind.SOURCE
    owner = "ThirdParty"
    provider = "GitHub"

    def __init__(
        self,
        name: str,
        owner: str,
        repo: str,
        oauth_token: SecretReference,
        output: Artifact,
        branch: str = "main",
        trigger: GitHubTrigger = GitHubTrigger.WEBHOOK,
        run_order: int = 1,
    ):
        if not isinstance(output, Artifact):
            raise ConfigurationError(f"Source action '{name}' needs exactly one output Artifact")
        if not isinstance(oauth_token, SecretReference):
            raise ConfigurationError(
                f"Source action '{name}' needs its token as a SecretReference, not a literal"
            )
        super().__init__(name=name, inputs=(), outputs=(output,), run_order=run_order)
        self.repo_owner = owner
        self.repo = repo
        self.branch = branch
        self.oauth_token = oauth_token
        self.trigger = trigger

    @property
    def output(self) -> Artifact:
        return self.outputs[0]

    def configuration(self) -> dict[str, str]:
        return {
            "Owner": self.repo_owner,
            "Repo": self.repo,
            "Branch": self.branch,
            "OAuthToken": str(self.oauth_token),
            "PollForSourceChanges": "true" if self.trigger is GitHubTrigger.POLL else "false",
        }

    def secrets(self) -> list[SecretReference]:
        return [self.oauth_token]


class BuildAction(Action):
    """Run a build project over an input artifact."""

    kind = ActionKind.BUILD
    provider = "CodeBuild"

    def __init__(
        self,
        name: str,
        project: BuildProject,
        input: Artifact,
        outputs: Iterable[Artifact] = (),
        run_order: int = 1,
    ):
        if not isinstance(input, Artifact):
            raise ConfigurationError(f"Build action '{name}' needs an input Artifact")
        super().__init__(name=name, inputs=(input,), outputs=outputs, run_order=run_order)
        self.project = project

    def configuration(self) -> dict[str, str]:
        return {"ProjectName": self.project.name}


class DeployAction(Action):
    """Deploy an input artifact to the instances of a deployment group."""

    kind = ActionKind.DEPLOY
    provider = "CodeDeploy"

    def __init__(
        self,
        name: str,
        input: Artifact,
        deployment_group: ServerDeploymentGroup,
        run_order: int = 1,
    ):
        if not isinstance(input, Artifact):
            raise ConfigurationError(f"Deploy action '{name}' needs a non-empty input Artifact")
        if not isinstance(deployment_group, ServerDeploymentGroup):
            raise ConfigurationError(f"Deploy action '{name}' needs a ServerDeploymentGroup")
        super().__init__(name=name, inputs=(input,), outputs=(), run_order=run_order)
        self.deployment_group = deployment_group

    def configuration(self) -> dict[str, str]:
        return {
            "ApplicationName": self.deployment_group.application.name,
            "DeploymentGroupName": self.deployment_group.name,
        }


ACTION_TYPES: dict[ActionKind, type[Action]] = {
    ActionKind.SOURCE: SourceAction,
    ActionKind.BUILD: BuildAction,
    ActionKind.DEPLOY: DeployAction,
}


class Stage:
    """A named phase of a pipeline holding one or more actions."""

    def __init__(self, name: str, pipeline: "Pipeline"):
        self.name = name
        self.pipeline = pipeline
        self._actions: list[Action] = []

    @property
    def position(self) -> int:
        """1-based execution position within the pipeline."""
        return self.pipeline.stages.index(self) + 1

    @property
    def actions(self) -> tuple[Action, ...]:
        return tuple(self._actions)

    def get_action(self, name: str) -> Action | None:
        for action in self._actions:
            if action.name == name:
                return action
        return None

    def add_action(self, action: Action) -> Action:
        """
        Append action to this stage.

        Either the action is added and its outputs are bound to it as
        producer, or nothing changes.

        Raises:
            ConfigurationError: On a duplicate action name, an action already
                placed in a stage, or an output that already has a producer
        """
        if action.stage is not None:
            raise ConfigurationError(f"Action '{action.name}' already belongs to stage '{action.stage.name}'")
        if self.get_action(action.name) is not None:
            raise ConfigurationError(
                f"Stage '{self.name}' already has an action named '{action.name}'"
            )
        for artifact in action.outputs:
            artifact.check_producer(action)

        action._stage = self
        for artifact in action.outputs:
            artifact.bind_producer(action, self.name)
        self._actions.append(action)
        logger.debug("Added %s to pipeline '%s'", action, self.pipeline.name)
        return action

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "position": self.position,
            "actions": [a.to_dict() for a in self._actions],
        }

    def __repr__(self):
        return f"Stage({self.name}, actions={len(self._actions)})"


@dataclass
class ArtifactEdge:
    """An artifact flowing from its producer to one consumer."""
    from_action: Action
    to_action: Action
    artifact: Artifact


class Pipeline:
    """
    An ordered sequence of stages.

    Example:
        pipeline = new_pipeline("python-webApp")
        source_stage = add_stage(pipeline, "Source")
        build_stage = add_stage(pipeline, "Build")

        source_output = Artifact()
        add_action(source_stage, ActionKind.SOURCE, name="GithubSource",
                   owner="khadree", repo="sample-python-web-app",
                   oauth_token=SecretReference.secrets_manager("github-oauth-token"),
                   output=source_output)
        add_action(build_stage, ActionKind.BUILD, name="TestPython",
                   project=BuildProject("pythonTestProject"), input=source_output)

        [[a.name for a in level] for level in pipeline.execution_levels]
        # [["GithubSource"], ["TestPython"]]
    """

    def __init__(
        self,
        name: str,
        cross_account_keys: bool = False,
        restart_execution_on_update: bool = False,
    ):
        if not name:
            raise ConfigurationError("Pipeline name must not be empty")
        self.name = name
        self.cross_account_keys = cross_account_keys
        self.restart_execution_on_update = restart_execution_on_update
        self._stages: list[Stage] = []

    @property
    def stages(self) -> tuple[Stage, ...]:
        return tuple(self._stages)

    @property
    def stage_names(self) -> list[str]:
        return [s.name for s in self._stages]

    def get_stage(self, name: str) -> Stage | None:
        for stage in self._stages:
            if stage.name == name:
                return stage
        return None

    def add_stage(self, name: str) -> Stage:
        """
        Append a stage.

        Raises:
            ConfigurationError: If a stage with that name exists; the stage
                list is left unchanged
        """
        if not name:
            raise ConfigurationError(f"Stage name in pipeline '{self.name}' must not be empty")
        if self.get_stage(name) is not None:
            raise ConfigurationError(
                f"Pipeline '{self.name}' already has a stage named '{name}'"
            )
        stage = Stage(name=name, pipeline=self)
        self._stages.append(stage)
        return stage

    @property
    def actions(self) -> list[Action]:
        """All actions in execution order."""
        return self.execution_order

    @property
    def execution_order(self) -> list[Action]:
        ordered: list[Action] = []
        for stage in self._stages:
            ordered.extend(sorted(stage.actions, key=lambda a: a.run_order))
        return ordered

    @property
    def artifacts(self) -> list[Artifact]:
        """Artifacts produced in this pipeline, in execution order."""
        return [artifact for action in self.execution_order for artifact in action.outputs]

    def producer_of(self, artifact: Artifact) -> Action | None:
        producer = artifact.producer
        if producer is None or producer.stage is None or producer.stage.pipeline is not self:
            return None
        return producer

    def consumers_of(self, artifact: Artifact) -> list[Action]:
        return [a for a in self.execution_order if artifact in a.inputs]

    @property
    def edges(self) -> list[ArtifactEdge]:
        edges = []
        for action in self.execution_order:
            for artifact in action.inputs:
                producer = self.producer_of(artifact)
                if producer is not None:
                    edges.append(ArtifactEdge(producer, action, artifact))
        return edges

    def graph(self) -> ActionGraph:
        """
        Build the action graph: artifact edges plus stage and run-order barriers.
        """
        graph = ActionGraph()
        for action in self.execution_order:
            graph.add_node(action.key, action, action.stage.name)

        previous_group: list[Action] = []
        for stage in self._stages:
            run_orders = sorted({a.run_order for a in stage.actions})
            for run_order in run_orders:
                group = [a for a in stage.actions if a.run_order == run_order]
                for before in previous_group:
                    for after in group:
                        graph.add_edge(before.key, after.key, STAGE_EDGE)
                previous_group = group

        for edge in self.edges:
            graph.add_edge(edge.from_action.key, edge.to_action.key, ARTIFACT_EDGE)

        return graph

    @property
    def execution_levels(self) -> list[list[Action]]:
        """Groups of actions that may run concurrently, in execution order."""
        graph = self.graph()
        return [
            [graph.nodes[key].action for key in level]
            for level in graph.get_execution_levels()
        ]

    def validate(self) -> bool:
        """
        Validate the pipeline structure.

        Checks:
        - At least two stages, none of them empty
        - Source actions only, and only, in the first stage
        - Every consumed artifact is produced earlier in this pipeline
        - Artifact names are unique
        - The action graph is acyclic

        Returns:
            True if valid

        Raises:
            ConfigurationError if invalid
        """
        if len(self._stages) < 2:
            raise ConfigurationError(f"Pipeline '{self.name}' needs at least two stages")

        for stage in self._stages:
            if not stage.actions:
                raise ConfigurationError(
                    f"Stage '{stage.name}' in pipeline '{self.name}' has no actions"
                )

        first = self._stages[0]
        for stage in self._stages:
            for action in stage.actions:
                is_source = action.kind is ActionKind.SOURCE
                if stage is first and not is_source:
                    raise ConfigurationError(
                        f"First stage '{stage.name}' may only hold source actions, "
                        f"found '{action.name}'"
                    )
                if stage is not first and is_source:
                    raise ConfigurationError(
                        f"Source action '{action.name}' must be in the first stage"
                    )

        for action in self.execution_order:
            for artifact in action.inputs:
                producer = self.producer_of(artifact)
                if producer is None:
                    raise ConfigurationError(
                        f"Action '{action.key}' consumes artifact '{artifact.name}' "
                        f"which no action in pipeline '{self.name}' produces"
                    )
                if not self._runs_before(producer, action):
                    raise ConfigurationError(
                        f"Action '{action.key}' consumes artifact '{artifact.name}' "
                        f"before its producer '{producer.key}' has run"
                    )

        names = [a.name for a in self.artifacts]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(
                f"Pipeline '{self.name}' has duplicate artifact names: {', '.join(duplicates)}"
            )

        cycle = self.graph().detect_cycles()
        if cycle:
            raise ConfigurationError(f"Pipeline '{self.name}' contains a cycle: {' -> '.join(cycle)}")

        return True

    def _runs_before(self, first: Action, second: Action) -> bool:
        first_pos, second_pos = first.stage.position, second.stage.position
        if first_pos != second_pos:
            return first_pos < second_pos
        return first.run_order < second.run_order

    def secrets(self) -> list[SecretReference]:
        return [ref for action in self.execution_order for ref in action.secrets()]

    @property
    def deployment_groups(self) -> list[ServerDeploymentGroup]:
        groups = []
        for action in self.execution_order:
            if isinstance(action, DeployAction) and action.deployment_group not in groups:
                groups.append(action.deployment_group)
        return groups

    @property
    def build_projects(self) -> list[BuildProject]:
        projects = []
        for action in self.execution_order:
            if isinstance(action, BuildAction) and action.project not in projects:
                projects.append(action.project)
        return projects

    def visualize(self) -> str:
        """Text rendering of stages, actions and artifact flow."""
        lines = [f"Pipeline: {self.name}", "=" * 50, ""]

        for stage in self._stages:
            lines.append(f"{stage.position}. {stage.name}")
            for action in stage.actions:
                lines.append(f"  {action.name} [{action.kind.value}/{action.provider}]")
                if action.inputs:
                    lines.append(f"    inputs: {', '.join(a.name for a in action.inputs)}")
                if action.outputs:
                    lines.append(f"    outputs: {', '.join(a.name for a in action.outputs)}")
            lines.append("")

        lines.append("Artifact flow:")
        for edge in self.edges:
            lines.append(
                f"  {edge.from_action.key} -> {edge.to_action.key} (via {edge.artifact.name})"
            )

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "pipeline",
            "name": self.name,
            "cross_account_keys": self.cross_account_keys,
            "restart_execution_on_update": self.restart_execution_on_update,
            "stages": [s.to_dict() for s in self._stages],
            "artifacts": [a.name for a in self.artifacts],
            "execution_levels": [[a.key for a in level] for level in self.execution_levels],
        }

    def __repr__(self):
        return f"Pipeline({self.name}, stages={len(self._stages)})"


def new_pipeline(name: str, **options) -> Pipeline:
    return Pipeline(name=name, **options)


def add_stage(pipeline: Pipeline, name: str) -> Stage:
    return pipeline.add_stage(name)


def add_action(stage: Stage, kind: ActionKind | str, **config) -> Action:
    """
    Build an action of the given kind from config and append it to stage.

    Example:
        add_action(deploy_stage, "Deploy", name="PythonAppDeployment",
                   input=source_output, deployment_group=group)
    """
    try:
        kind = ActionKind(kind)
    except ValueError as e:
        raise ConfigurationError(f"Unknown action kind '{kind}'") from e
    try:
        action = ACTION_TYPES[kind](**config)
    except TypeError as e:
        raise ConfigurationError(f"Invalid {kind.value} action configuration: {e}") from e
    return stage.add_action(action)
