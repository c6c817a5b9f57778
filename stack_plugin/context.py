"""Invocation context supplied by the GitOps controller for one application sync.

Argo CD runs a Config Management Plugin with the application source as the
working directory and describes the application through environment
variables. This module collects those variables into an immutable
`InvocationContext` that templates address by name:

```python
from stack_plugin.context import InvocationContext

context = InvocationContext.from_environ(os.environ)
print(context.lookup("ARGOCD_APP_NAME"))
print(context.lookup("parameters.organization"))
```
"""

from collections.abc import Generator, Mapping
import contextvars
from contextlib import contextmanager
from dataclasses import dataclass, field
import json
import logging
from time import perf_counter
from typing import Any

from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "InvocationContext",
    "VARIABLES",
    "PARAMETERS_PREFIX",
    "ENV_PREFIX",
]

_LOGGER = logging.getLogger(__name__)


PARAMETERS_PREFIX = "parameters."
ENV_PREFIX = "env."
ARGOCD_ENV_PREFIX = "ARGOCD_ENV_"
ARGOCD_APP_PARAMETERS = "ARGOCD_APP_PARAMETERS"

# Template variable name to InvocationContext field
VARIABLES = {
    "ARGOCD_APP_NAME": "app_name",
    "ARGOCD_APP_NAMESPACE": "namespace",
    "ARGOCD_APP_PROJECT_NAME": "project_name",
    "ARGOCD_APP_REVISION": "revision",
    "ARGOCD_APP_SOURCE_REPO_URL": "source_repo_url",
    "ARGOCD_APP_SOURCE_PATH": "source_path",
    "ARGOCD_APP_SOURCE_TARGET_REVISION": "target_revision",
}


@dataclass(frozen=True)
class InvocationContext(DataClassDictMixin):
    """The named variables for a single plugin invocation."""

    app_name: str | None = None
    """The name of the Argo CD Application."""

    namespace: str | None = None
    """The destination namespace of the Application."""

    project_name: str | None = None
    """The Argo CD project that owns the Application."""

    revision: str | None = None
    """The resolved revision (commit) being synced."""

    source_repo_url: str | None = None
    """The repository URL of the Application source."""

    source_path: str | None = None
    """The path of the Application source within the repository."""

    target_revision: str | None = None
    """The target revision requested by the Application (e.g. a branch)."""

    parameters: dict[str, str] = field(default_factory=dict)
    """Flattened plugin parameters, addressed as `parameters.<key>`."""

    env: dict[str, str] = field(default_factory=dict)
    """Plugin environment entries, addressed as `env.<key>`."""

    class Config(BaseConfig):
        omit_none = True

    @classmethod
    def from_environ(
        cls,
        environ: Mapping[str, str],
        parameters: Mapping[str, str] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "InvocationContext":
        """Build the context from the plugin process environment.

        The `parameters` and `env` arguments override values found in the
        environment, which is useful when running the plugin locally.
        """
        values: dict[str, Any] = {
            attr: environ.get(name) for name, attr in VARIABLES.items()
        }
        params = parse_parameters(environ.get(ARGOCD_APP_PARAMETERS))
        params.update(parameters or {})
        plugin_env = {
            key.removeprefix(ARGOCD_ENV_PREFIX): value
            for key, value in environ.items()
            if key.startswith(ARGOCD_ENV_PREFIX)
        }
        plugin_env.update(env or {})
        return cls(**values, parameters=params, env=plugin_env)

    def lookup(self, name: str) -> str | None:
        """Return the value of the named variable, or None when absent."""
        if name.startswith(PARAMETERS_PREFIX):
            return self.parameters.get(name.removeprefix(PARAMETERS_PREFIX))
        if name.startswith(ENV_PREFIX):
            return self.env.get(name.removeprefix(ENV_PREFIX))
        if (attr := VARIABLES.get(name)) is None:
            return None
        return getattr(self, attr)

    @property
    def label(self) -> str:
        """Identifier of the application used in log messages."""
        if self.namespace:
            return f"{self.namespace}/{self.app_name or '<unknown>'}"
        return self.app_name or "<unknown>"


def parse_parameters(content: str | None) -> dict[str, str]:
    """Flatten the Argo CD `ARGOCD_APP_PARAMETERS` json into parameter keys.

    String parameters are stored by name, array items as `<name>.<index>` and
    map entries as `<name>.<key>`.
    """
    if not content:
        return {}
    try:
        doc = json.loads(content)
    except ValueError as err:
        raise InputException(
            f"Invalid {ARGOCD_APP_PARAMETERS}, expected json: {err}"
        ) from err
    if not isinstance(doc, list):
        raise InputException(
            f"Invalid {ARGOCD_APP_PARAMETERS}, expected a list: {doc}"
        )
    result: dict[str, str] = {}
    for param in doc:
        if not isinstance(param, dict) or not (name := param.get("name")):
            raise InputException(f"Invalid parameter missing name: {param}")
        if (value := param.get("string")) is not None:
            result[name] = str(value)
        for index, item in enumerate(param.get("array") or ()):
            result[f"{name}.{index}"] = str(item)
        for key, item in (param.get("map") or {}).items():
            result[f"{name}.{key}"] = str(item)
    _LOGGER.debug("Parsed %d parameter values", len(result))
    return result


trace: contextvars.ContextVar[list[str]] = contextvars.ContextVar("trace")


@contextmanager
def trace_context(name: str) -> Generator[None, None, None]:
    """Log entry, exit and duration of a lifecycle step at debug level."""
    stack = trace.get([])
    token = trace.set(stack + [name])
    label = " > ".join(stack + [name])
    t1 = perf_counter()
    _LOGGER.debug("[Trace] > %s", label)
    try:
        yield
    finally:
        t2 = perf_counter()
        trace.reset(token)
        _LOGGER.debug("[Trace] < %s (%0.2fs)", label, (t2 - t1))
