"""
Provisioning settings.

Settings describe where a topology is provisioned (stack name, region,
availability zones, default tags). They can be built directly, read from
WEBSTACK_* environment variables, or loaded from a YAML file.
"""

import os
import string
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from webstack.errors import ConfigurationError


class ProvisionSettings(BaseModel):
    """
    Provisioning target configuration.

    Example:
        settings = ProvisionSettings(
            stack_name="python-web",
            region="eu-west-1",
            max_azs=2,
            tags={"managed_by": "webstack"}
        )

        settings.availability_zones  # ["eu-west-1a", "eu-west-1b"]
    """

    stack_name: str = Field(default="Ec2CdkStack", description="Stack name")
    region: str = Field(default="us-east-1", description="Cloud region")
    max_azs: int = Field(
        default=3, ge=1, le=6, description="Zones to spread subnets across"
    )
    availability_zones: list[str] = Field(
        default_factory=list,
        description="Explicit zones; derived from region and max_azs when empty",
    )
    tags: dict[str, str] = Field(
        default_factory=dict, description="Default tags for all resources"
    )

    @model_validator(mode="after")
    def _derive_zones(self) -> "ProvisionSettings":
        if not self.availability_zones:
            self.availability_zones = [
                f"{self.region}{letter}"
                for letter in string.ascii_lowercase[: self.max_azs]
            ]
        elif len(set(self.availability_zones)) != len(self.availability_zones):
            raise ValueError("availability_zones must not contain duplicates")
        return self

    @classmethod
    def from_env(cls, prefix: str = "WEBSTACK_", **overrides: Any) -> "ProvisionSettings":
        """
        Create settings from environment variables.

        Reads WEBSTACK_STACK_NAME, WEBSTACK_REGION, WEBSTACK_MAX_AZS and
        WEBSTACK_AVAILABILITY_ZONES (comma separated). Keyword overrides win.
        """
        values: dict[str, Any] = {}
        for field_name in ("stack_name", "region", "max_azs"):
            raw = os.environ.get(f"{prefix}{field_name.upper()}")
            if raw:
                values[field_name] = raw
        zones = os.environ.get(f"{prefix}AVAILABILITY_ZONES")
        if zones:
            values["availability_zones"] = [z.strip() for z in zones.split(",") if z.strip()]
        values.update(overrides)
        return build_model(cls, values)


def build_model(model: type[BaseModel], values: dict[str, Any]) -> Any:
    """Validate values into a pydantic model, raising ConfigurationError on failure."""
    try:
        return model.model_validate(values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {model.__name__}: {e}") from e


def read_yaml(path: str | Path) -> dict[str, Any]:
    """Read a YAML mapping from disk."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a mapping at the top of {path}")
    return data


def load_settings(path: str | Path) -> ProvisionSettings:
    """
    Load ProvisionSettings from the `settings:` section of a YAML file.

    A file without a `settings:` section yields the defaults.
    """
    data = read_yaml(path)
    return build_model(ProvisionSettings, data.get("settings") or {})
