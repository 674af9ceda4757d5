"""
Ready-made topologies.
"""

from webstack.blueprints.python_web import (
    IP_ADDRESS_OUTPUT,
    PythonWebAppConfig,
    load_blueprint_config,
    python_web_topology,
)

__all__ = [
    "IP_ADDRESS_OUTPUT",
    "PythonWebAppConfig",
    "load_blueprint_config",
    "python_web_topology",
]
