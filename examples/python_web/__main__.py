"""
Pulumi program for the python web blueprint.

    cd examples/python_web
    pulumi up
"""

from pathlib import Path

from webstack.blueprints import load_blueprint_config, python_web_topology
from webstack.compilation.pulumi_compiler import PulumiCompiler
from webstack.settings import load_settings

CONFIG = Path(__file__).parent / "webstack.yaml"

topology = python_web_topology(load_blueprint_config(CONFIG), load_settings(CONFIG))
PulumiCompiler().compile(topology)
