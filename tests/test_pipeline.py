"""
Tests for pipelines, stages, actions and artifacts.
"""

import pytest

from webstack.core.artifact import Artifact
from webstack.core.dag import ARTIFACT_EDGE, STAGE_EDGE
from webstack.core.pipeline import (
    ActionKind,
    BuildAction,
    BuildProject,
    DeployAction,
    SourceAction,
    add_action,
    add_stage,
    new_pipeline,
)
from webstack.errors import ConfigurationError


@pytest.fixture
def pipeline():
    return new_pipeline("python-webApp")


def _source(stage, token, output, name="GithubSource"):
    return add_action(
        stage,
        ActionKind.SOURCE,
        name=name,
        owner="khadree",
        repo="sample-python-web-app",
        oauth_token=token,
        output=output,
    )


@pytest.fixture
def three_stage(pipeline, oauth_token, deployment_group):
    """Source -> Build -> Deploy, with Deploy consuming the source output."""
    source_stage = add_stage(pipeline, "Source")
    build_stage = add_stage(pipeline, "Build")
    deploy_stage = add_stage(pipeline, "Deploy")

    source_output = Artifact()
    _source(source_stage, oauth_token, source_output)
    add_action(
        build_stage,
        ActionKind.BUILD,
        name="TestPython",
        project=BuildProject("pythonTestProject"),
        input=source_output,
    )
    add_action(
        deploy_stage,
        ActionKind.DEPLOY,
        name="PythonAppDeployment",
        input=source_output,
        deployment_group=deployment_group,
    )
    return pipeline


class TestStages:
    """Tests for stage ordering."""

    def test_positions_follow_declaration(self, pipeline, oauth_token, source_artifact):
        """Stages execute in the order they were added, even with actions added in between."""
        source = add_stage(pipeline, "Source")
        _source(source, oauth_token, source_artifact)
        build = add_stage(pipeline, "Build")
        add_action(
            build,
            ActionKind.BUILD,
            name="TestPython",
            project=BuildProject("pythonTestProject"),
            input=source_artifact,
        )
        add_stage(pipeline, "Deploy")

        assert pipeline.stage_names == ["Source", "Build", "Deploy"]
        assert [s.position for s in pipeline.stages] == [1, 2, 3]
        assert [a.stage.position for a in pipeline.actions] == [1, 2]

    def test_duplicate_stage_rejected(self, pipeline):
        """A duplicate stage name raises and leaves the stage list unchanged."""
        add_stage(pipeline, "Source")
        add_stage(pipeline, "Build")

        with pytest.raises(ConfigurationError, match="already has a stage"):
            add_stage(pipeline, "Source")

        assert pipeline.stage_names == ["Source", "Build"]

    def test_empty_stage_name(self, pipeline):
        """Stages need a name."""
        with pytest.raises(ConfigurationError):
            add_stage(pipeline, "")


class TestActions:
    """Tests for action construction and placement."""

    def test_source_action_configuration(self, pipeline, oauth_token, source_artifact):
        """Source actions reference the token instead of embedding it."""
        stage = add_stage(pipeline, "Source")
        action = _source(stage, oauth_token, source_artifact)

        assert isinstance(action, SourceAction)
        assert action.key == "Source/GithubSource"
        config = action.configuration()
        assert config["Owner"] == "khadree"
        assert config["Branch"] == "main"
        assert config["OAuthToken"] == (
            "{{resolve:secretsmanager:github-oauth-token:SecretString:::}}"
        )
        assert action.secrets() == [oauth_token]

    def test_literal_token_rejected(self, pipeline, source_artifact):
        """A plain-string OAuth token is not accepted."""
        stage = add_stage(pipeline, "Source")

        with pytest.raises(ConfigurationError, match="SecretReference"):
            _source(stage, "ghp_plaintext", source_artifact)

    def test_deploy_requires_input(self, pipeline, deployment_group):
        """Deploy actions without an input artifact are rejected."""
        stage = add_stage(pipeline, "Deploy")

        with pytest.raises(ConfigurationError):
            add_action(stage, ActionKind.DEPLOY, name="d", deployment_group=deployment_group)

        with pytest.raises(ConfigurationError):
            DeployAction(name="d", input=None, deployment_group=deployment_group)

        assert stage.actions == ()

    def test_unknown_kind(self, pipeline):
        """Unknown action kinds raise ConfigurationError."""
        stage = add_stage(pipeline, "Test")

        with pytest.raises(ConfigurationError, match="Unknown action kind"):
            add_action(stage, "Approve", name="manual")

    def test_kind_by_string(self, pipeline, source_artifact):
        """Action kinds may be given by their string value."""
        stage = add_stage(pipeline, "Build")
        action = add_action(
            stage, "Build", name="b", project=BuildProject("p"), input=source_artifact
        )

        assert isinstance(action, BuildAction)

    def test_invalid_run_order(self, source_artifact):
        """run_order starts at 1."""
        with pytest.raises(ConfigurationError):
            BuildAction(name="b", project=BuildProject("p"), input=source_artifact, run_order=0)

    def test_duplicate_action_name(self, pipeline, source_artifact):
        """Action names are unique within a stage."""
        stage = add_stage(pipeline, "Build")
        add_action(stage, "Build", name="b", project=BuildProject("p"), input=source_artifact)

        with pytest.raises(ConfigurationError, match="already has an action"):
            add_action(stage, "Build", name="b", project=BuildProject("p"), input=source_artifact)


class TestArtifacts:
    """Tests for artifact production."""

    def test_second_producer_rejected(self, pipeline, oauth_token, source_artifact):
        """An artifact cannot be produced by two actions."""
        stage = add_stage(pipeline, "Source")
        first = _source(stage, oauth_token, source_artifact, name="first")

        with pytest.raises(ConfigurationError, match="multiple actions"):
            _source(stage, oauth_token, source_artifact, name="second")

        assert source_artifact.producer is first
        assert [a.name for a in stage.actions] == ["first"]

    def test_failed_add_binds_nothing(self, pipeline, oauth_token, source_artifact):
        """A rejected action leaves its other outputs unproduced."""
        source_stage = add_stage(pipeline, "Source")
        build_stage = add_stage(pipeline, "Build")
        _source(source_stage, oauth_token, source_artifact)
        taken = Artifact("taken")
        add_action(build_stage, "Build", name="one", project=BuildProject("p"),
                   input=source_artifact, outputs=[taken])
        free = Artifact("free")

        with pytest.raises(ConfigurationError):
            add_action(build_stage, "Build", name="two", project=BuildProject("p"),
                       input=source_artifact, outputs=[free, taken])

        assert not free.is_produced
        assert build_stage.get_action("two") is None

    def test_auto_naming(self, pipeline, oauth_token, source_artifact):
        """Unnamed artifacts are named after their producer."""
        stage = add_stage(pipeline, "Source")
        _source(stage, oauth_token, source_artifact)

        assert source_artifact.name == "Artifact_Source_GithubSource"

    def test_consumers(self, three_stage):
        """An artifact may feed several later actions."""
        source_output = three_stage.get_stage("Source").actions[0].outputs[0]

        consumers = three_stage.consumers_of(source_output)

        assert [a.name for a in consumers] == ["TestPython", "PythonAppDeployment"]
        assert three_stage.producer_of(source_output).name == "GithubSource"


class TestExecution:
    """Tests for the pipeline action graph."""

    def test_three_stage_levels(self, three_stage):
        """Source, Build and Deploy run one after another."""
        levels = [[a.key for a in level] for level in three_stage.execution_levels]

        assert levels == [
            ["Source/GithubSource"],
            ["Build/TestPython"],
            ["Deploy/PythonAppDeployment"],
        ]

    def test_stage_barrier_without_artifact(self, three_stage):
        """Deploy waits for Build although it consumes nothing Build produced."""
        graph = three_stage.graph()

        assert "Build/TestPython" in graph.get_dependencies("Deploy/PythonAppDeployment")
        assert graph.edge_kinds("Build/TestPython", "Deploy/PythonAppDeployment") == {STAGE_EDGE}
        assert ARTIFACT_EDGE in graph.edge_kinds(
            "Source/GithubSource", "Deploy/PythonAppDeployment"
        )

    def test_same_run_order_runs_concurrently(self, pipeline, oauth_token, source_artifact):
        """Actions sharing a run order in one stage form one level."""
        source_stage = add_stage(pipeline, "Source")
        build_stage = add_stage(pipeline, "Build")
        _source(source_stage, oauth_token, source_artifact)
        for name in ("lint", "test"):
            add_action(build_stage, "Build", name=name, project=BuildProject(name),
                       input=source_artifact)
        add_action(build_stage, "Build", name="package", project=BuildProject("package"),
                   input=source_artifact, run_order=2)

        levels = [[a.name for a in level] for level in pipeline.execution_levels]

        assert levels == [["GithubSource"], ["lint", "test"], ["package"]]
        assert [a.name for a in pipeline.execution_order] == [
            "GithubSource", "lint", "test", "package"
        ]

    def test_visualize(self, three_stage):
        """The text rendering lists stages and artifact flow."""
        text = three_stage.visualize()

        assert "1. Source" in text
        assert "3. Deploy" in text
        assert "Source/GithubSource -> Deploy/PythonAppDeployment" in text


class TestValidation:
    """Tests for Pipeline.validate."""

    def test_valid_pipeline(self, three_stage):
        """The three-stage pipeline validates."""
        assert three_stage.validate() is True

    def test_single_stage_rejected(self, pipeline, oauth_token, source_artifact):
        """A pipeline needs at least two stages."""
        _source(add_stage(pipeline, "Source"), oauth_token, source_artifact)

        with pytest.raises(ConfigurationError, match="at least two stages"):
            pipeline.validate()

    def test_empty_stage_rejected(self, three_stage):
        """A stage with no actions is invalid."""
        add_stage(three_stage, "Approve")

        with pytest.raises(ConfigurationError, match="has no actions"):
            three_stage.validate()

    def test_source_outside_first_stage(self, three_stage, oauth_token):
        """Source actions belong in the first stage only."""
        late = add_stage(three_stage, "Late")
        _source(late, oauth_token, Artifact(), name="LateSource")

        with pytest.raises(ConfigurationError, match="must be in the first stage"):
            three_stage.validate()

    def test_first_stage_only_sources(self, pipeline, source_artifact, deployment_group):
        """The first stage may not hold build or deploy actions."""
        first = add_stage(pipeline, "Build")
        add_action(first, "Build", name="b", project=BuildProject("p"), input=source_artifact)
        second = add_stage(pipeline, "Deploy")
        add_action(second, "Deploy", name="d", input=source_artifact,
                   deployment_group=deployment_group)

        with pytest.raises(ConfigurationError, match="may only hold source actions"):
            pipeline.validate()

    def test_unproduced_input(self, pipeline, oauth_token, source_artifact):
        """Consuming an artifact nothing produces is invalid."""
        _source(add_stage(pipeline, "Source"), oauth_token, source_artifact)
        add_action(add_stage(pipeline, "Build"), "Build", name="b",
                   project=BuildProject("p"), input=Artifact("orphan"))

        with pytest.raises(ConfigurationError, match="orphan"):
            pipeline.validate()

    def test_consumed_before_produced(self, pipeline, oauth_token, source_artifact):
        """A consumer sharing its producer's run order runs too early."""
        _source(add_stage(pipeline, "Source"), oauth_token, source_artifact)
        build_stage = add_stage(pipeline, "Build")
        compiled = Artifact("compiled")
        add_action(build_stage, "Build", name="compile", project=BuildProject("c"),
                   input=source_artifact, outputs=[compiled])
        add_action(build_stage, "Build", name="test", project=BuildProject("t"),
                   input=compiled)

        with pytest.raises(ConfigurationError, match="before its producer"):
            pipeline.validate()
