"""Configuration objects for stack-plugin.

The configuration describes how the plugin discovers applications, where it
finds templates and which parameters it accepts. The same configuration is
used to produce the Argo CD `ConfigManagementPlugin` definition that the
repo-server sidecar loads, so both always agree.

Example configuration file:
```yaml
name: pulumi-plugin
version: v1.0
discover:
  fileName: Pulumi.yaml
templates:
  - "*.envsubst"
parameters:
  - name: organization
    required: true
  - name: stack
    default: dev
```
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import aiofiles
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import InvalidFieldValue, MissingField
import yaml

from .context import InvocationContext, PARAMETERS_PREFIX
from .emitter import DEFAULT_SECRET_ENV_NAMES
from .exceptions import InputException, UnresolvedVariable

__all__ = [
    "PluginConfig",
    "DiscoverConfig",
    "ParameterSpec",
    "read_config",
    "CONFIG_ENV",
]

_LOGGER = logging.getLogger(__name__)

CONFIG_ENV = "STACK_PLUGIN_CONFIG"
CMP_API_VERSION = "argoproj.io/v1alpha1"
CMP_KIND = "ConfigManagementPlugin"
DEFAULT_COMMAND = "stack-plugin"


@dataclass
class BaseModel(DataClassDictMixin):
    """Base class for configuration objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass
class DiscoverConfig(BaseModel):
    """How the plugin decides it applies to an application source."""

    file_name: str = field(
        metadata=field_options(alias="fileName"), default="Pulumi.yaml"
    )
    """Glob matched against the source root, e.g. `Pulumi.yaml`."""


@dataclass
class ParameterSpec(BaseModel):
    """A plugin parameter announced to Argo CD."""

    name: str
    """The parameter name, referenced as `${parameters.<name>}`."""

    title: str | None = None
    """Human readable title shown in the Argo CD UI."""

    default: str | None = None
    """Value used when the Application does not set the parameter."""

    required: bool = False
    """Whether the Application must set the parameter."""


@dataclass
class PluginConfig(BaseModel):
    """Configuration for the plugin."""

    name: str = "pulumi-plugin"
    """The plugin name registered with Argo CD."""

    version: str = "v1.0"
    """The plugin version, Applications refer to `<name>-<version>`."""

    discover: DiscoverConfig = field(default_factory=DiscoverConfig)

    templates: list[str] = field(default_factory=lambda: ["*.envsubst"])
    """Globs for template files in the source root."""

    state_dir: str = field(
        metadata=field_options(alias="stateDir"), default=".stack-plugin"
    )
    """Directory for init state, relative to the source root."""

    parameters: list[ParameterSpec] = field(default_factory=list)

    secret_env_names: list[str] = field(
        metadata=field_options(alias="secretEnvNames"),
        default_factory=lambda: list(DEFAULT_SECRET_ENV_NAMES),
    )
    """Stack environment variables that must come from a Secret reference."""

    command: str = DEFAULT_COMMAND
    """The executable invoked by the sidecar."""

    @property
    def full_name(self) -> str:
        """The name Applications use to select the plugin."""
        return f"{self.name}-{self.version}"

    @property
    def defaults(self) -> dict[str, str]:
        """Declared parameter defaults keyed by variable name."""
        return {
            f"{PARAMETERS_PREFIX}{param.name}": param.default
            for param in self.parameters
            if param.default is not None
        }

    def check_required(self, context: InvocationContext) -> None:
        """Raise UnresolvedVariable when a required parameter is not set.

        A declared default satisfies the requirement.
        """
        for param in self.parameters:
            if (
                param.required
                and param.default is None
                and param.name not in context.parameters
            ):
                raise UnresolvedVariable(f"{PARAMETERS_PREFIX}{param.name}")

    def plugin_manifest(self) -> dict[str, Any]:
        """Return the Argo CD ConfigManagementPlugin definition."""
        spec: dict[str, Any] = {
            "version": self.version,
            "discover": {"fileName": self.discover.file_name},
            "init": {"command": [self.command, "init"]},
            "generate": {"command": [self.command, "generate"]},
        }
        if self.parameters:
            static = []
            for param in self.parameters:
                entry: dict[str, Any] = {"name": param.name}
                if param.title:
                    entry["title"] = param.title
                if param.required:
                    entry["required"] = True
                if param.default is not None:
                    entry["string"] = param.default
                static.append(entry)
            spec["parameters"] = {"static": static}
        return {
            "apiVersion": CMP_API_VERSION,
            "kind": CMP_KIND,
            "metadata": {"name": self.name},
            "spec": spec,
        }

    def config_map(self, name: str, namespace: str) -> dict[str, Any]:
        """Return a ConfigMap holding the plugin definition as `plugin.yaml`."""
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": name, "namespace": namespace},
            "data": {
                "plugin.yaml": yaml.dump(self.plugin_manifest(), sort_keys=False),
            },
        }


def parse_config(content: str) -> PluginConfig:
    """Parse the configuration file contents."""
    try:
        doc = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise InputException(f"Invalid plugin configuration: {err}") from err
    if doc is None:
        return PluginConfig()
    if not isinstance(doc, dict):
        raise InputException(f"Invalid plugin configuration, expected a mapping: {doc}")
    try:
        return PluginConfig.from_dict(doc)
    except (MissingField, InvalidFieldValue) as err:
        raise InputException(f"Invalid plugin configuration: {err}") from err


async def read_config(config_path: Path) -> PluginConfig:
    """Return the contents of a plugin configuration file."""
    _LOGGER.debug("Reading plugin configuration %s", config_path)
    try:
        async with aiofiles.open(str(config_path)) as config_file:
            content = await config_file.read()
    except OSError as err:
        raise InputException(
            f"Unable to read plugin configuration {config_path}: {err}"
        ) from err
    return parse_config(content)
