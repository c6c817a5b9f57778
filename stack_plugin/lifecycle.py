"""The discover, init and generate lifecycle of a plugin invocation.

Argo CD calls a Config Management Plugin in three steps for every sync of an
application. `Plugin` makes those steps an explicit state machine:

```
Uninitialized --discover--> Discovered --init--> Initialized --generate--> Generated
      |                          |                    |
      +------------------------- any error ---------------------------> Failed
```

A negative discovery is not an error: the plugin simply does not apply and
stays `Uninitialized`. `Failed` and `Generated` are terminal. A plugin is
created for a single invocation and holds all of its state, so concurrent
invocations never share anything.

Use `invoke` to run all of the steps and get a result:

```python
from stack_plugin import lifecycle

result = await lifecycle.invoke(config, context, Path("."))
if result.error:
    print(result.error, file=sys.stderr)
else:
    print(result.output, end="")
```
"""

import asyncio
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from pathlib import Path

import aiofiles
import aiofiles.os
from aiofiles.ospath import exists, isdir
from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig
import yaml

from .config import PluginConfig
from .context import InvocationContext, trace_context
from .emitter import emit
from .exceptions import (
    Cancelled,
    DiscoveryMismatch,
    IOFailure,
    InvalidTransition,
    PluginException,
)
from .manifest import EmittedManifest
from .template import (
    BUILTIN_TEMPLATE,
    ManifestTemplate,
    find_templates,
    read_template,
    render_templates,
)

__all__ = [
    "Plugin",
    "PluginState",
    "InvocationResult",
    "invoke",
]

_LOGGER = logging.getLogger(__name__)

STATE_FILE = "context.yaml"


class PluginState(StrEnum):
    """Lifecycle state of a plugin invocation."""

    UNINITIALIZED = "Uninitialized"
    DISCOVERED = "Discovered"
    INITIALIZED = "Initialized"
    GENERATED = "Generated"
    FAILED = "Failed"


@dataclass
class InitState(DataClassDictMixin):
    """Contents of the state file written by init.

    Only identifies the invocation. Parameter and plugin env values may carry
    credentials so they are never written to the application source.
    """

    plugin: str
    application: str
    revision: str | None = None
    parameters: list[str] = field(default_factory=list)
    """Names of the parameters set by the application."""

    templates: list[str] = field(default_factory=list)

    class Config(BaseConfig):
        omit_none = True

    @classmethod
    def from_context(
        cls, plugin: str, context: InvocationContext, templates: list[str]
    ) -> "InitState":
        return cls(
            plugin=plugin,
            application=context.label,
            revision=context.revision,
            parameters=sorted(context.parameters),
            templates=templates,
        )

    def yaml(self) -> str:
        return yaml.dump(self.to_dict(), sort_keys=False)


@dataclass
class InvocationResult:
    """The outcome of one invocation of the plugin."""

    state: PluginState
    """The final lifecycle state."""

    manifest: EmittedManifest | None = None
    """The generated manifest, only set when the state is Generated."""

    error: PluginException | None = None
    """The error that caused the invocation to fail."""

    @property
    def not_applicable(self) -> bool:
        """True when discovery did not match the application source."""
        return self.state == PluginState.UNINITIALIZED and self.error is None

    @property
    def output(self) -> str:
        """The YAML stream written for the GitOps controller."""
        if self.manifest is None:
            return ""
        return self.manifest.yaml()


async def _update_file(path: Path, content: str) -> None:
    """Write the file only if its content changed."""
    if await exists(str(path)):
        try:
            async with aiofiles.open(str(path)) as existing:
                current = await existing.read()
        except UnicodeDecodeError as err:
            raise IOFailure(f"Unable to read state file {path}: {err}") from err
        if current == content:
            _LOGGER.debug("State file %s is up to date", path)
            return
    async with aiofiles.open(str(path), mode="w") as state_file:
        await state_file.write(content)


class Plugin:
    """A single invocation of the plugin for one application source."""

    def __init__(
        self,
        config: PluginConfig,
        context: InvocationContext,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """Initialize Plugin."""
        self._config = config
        self._context = context
        self._cancel = cancel
        self._state = PluginState.UNINITIALIZED
        self._error: PluginException | None = None
        self._applicable: bool | None = None
        self._source_path: Path | None = None
        self._markers: list[Path] = []
        self._template_paths: list[Path] = []
        self._manifest: EmittedManifest | None = None

    @property
    def state(self) -> PluginState:
        """The current lifecycle state."""
        return self._state

    @property
    def error(self) -> PluginException | None:
        """The error that moved the plugin to Failed."""
        return self._error

    @property
    def markers(self) -> list[Path]:
        """Files that matched discovery."""
        return list(self._markers)

    @property
    def template_paths(self) -> list[Path]:
        """Template files found during discovery, empty for the builtin template."""
        return list(self._template_paths)

    @property
    def manifest(self) -> EmittedManifest | None:
        """The generated manifest once the plugin reached Generated."""
        return self._manifest

    @property
    def state_file(self) -> Path:
        """The file written by init."""
        if self._source_path is None:
            raise InvalidTransition("Plugin has not discovered a source path")
        return self._source_path / self._config.state_dir / STATE_FILE

    async def discover(self, source_path: Path) -> bool:
        """Return True if the plugin applies to the application source."""
        self._require("discover", PluginState.UNINITIALIZED)
        if self._applicable is False:
            raise InvalidTransition("Discovery already completed without a match")
        with trace_context("discover"), self._failure_guard():
            if not await isdir(str(source_path)):
                raise IOFailure(f"Application source {source_path} is not a directory")
            markers = sorted(source_path.glob(self._config.discover.file_name))
            if not markers:
                _LOGGER.info(
                    "Plugin %s does not apply to %s (no %s)",
                    self._config.full_name,
                    source_path,
                    self._config.discover.file_name,
                )
                self._applicable = False
                return False
            self._applicable = True
            self._source_path = source_path
            self._markers = markers
            self._template_paths = find_templates(source_path, self._config.templates)
            if not self._template_paths:
                _LOGGER.debug("No templates in %s, using builtin template", source_path)
            self._state = PluginState.DISCOVERED
        return True

    async def init(self) -> None:
        """Prepare the state directory; safe to call more than once."""
        self._require("init", PluginState.DISCOVERED, PluginState.INITIALIZED)
        with trace_context("init"), self._failure_guard():
            self._check_cancelled()
            self._config.check_required(self._context)
            state_file = self.state_file
            await aiofiles.os.makedirs(str(state_file.parent), exist_ok=True)
            state = InitState.from_context(
                self._config.full_name, self._context, self._template_names()
            )
            await _update_file(state_file, state.yaml())
            self._state = PluginState.INITIALIZED

    async def generate(self) -> EmittedManifest:
        """Render and validate the manifests for the application."""
        self._require("generate", PluginState.INITIALIZED)
        with trace_context("generate"), self._failure_guard():
            self._check_cancelled()
            templates = await self._load_templates()
            rendered = render_templates(
                templates, self._context, self._config.defaults
            )
            self._check_cancelled()
            manifest = emit(rendered, self._config.secret_env_names)
            self._manifest = manifest
            self._state = PluginState.GENERATED
        _LOGGER.info(
            "Generated %d documents for %s", len(manifest), self._context.label
        )
        return manifest

    async def read_templates(self) -> list[ManifestTemplate]:
        """Read and parse the templates found by discovery."""
        self._require(
            "read templates",
            PluginState.DISCOVERED,
            PluginState.INITIALIZED,
        )
        return await self._load_templates()

    async def _load_templates(self) -> list[ManifestTemplate]:
        if not self._template_paths:
            return [await read_template(BUILTIN_TEMPLATE)]
        return [
            await read_template(path, name)
            for path, name in zip(self._template_paths, self._template_names())
        ]

    def _template_names(self) -> list[str]:
        if self._source_path is None:
            return []
        return [
            str(path.relative_to(self._source_path)) for path in self._template_paths
        ]

    def _require(self, operation: str, *states: PluginState) -> None:
        if self._state == PluginState.FAILED:
            raise InvalidTransition(
                f"Cannot {operation}, plugin already failed: {self._error}"
            )
        if self._applicable is False and operation != "discover":
            raise DiscoveryMismatch(
                f"Plugin {self._config.full_name} does not apply to this application"
            )
        if self._state not in states:
            raise InvalidTransition(f"Cannot {operation} from state {self._state}")

    def _check_cancelled(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise Cancelled(f"Invocation for {self._context.label} was cancelled")

    def _fail(self, err: PluginException) -> None:
        _LOGGER.debug("Plugin failed in state %s: %s", self._state, err)
        self._state = PluginState.FAILED
        self._error = err
        self._manifest = None

    @contextmanager
    def _failure_guard(self) -> Generator[None, None, None]:
        """Move the plugin to Failed on any error raised by a step."""
        try:
            yield
        except PluginException as err:
            self._fail(err)
            raise
        except OSError as err:
            failure = IOFailure(str(err))
            self._fail(failure)
            raise failure from err
        except asyncio.CancelledError:
            self._fail(Cancelled(f"Invocation for {self._context.label} was cancelled"))
            raise


async def invoke(
    config: PluginConfig,
    context: InvocationContext,
    source_path: Path,
    cancel: asyncio.Event | None = None,
) -> InvocationResult:
    """Run discover, init and generate for an application source."""
    plugin = Plugin(config, context, cancel)
    try:
        if not await plugin.discover(source_path):
            return InvocationResult(state=plugin.state)
        await plugin.init()
        manifest = await plugin.generate()
    except PluginException as err:
        _LOGGER.debug("Invocation for %s failed: %s", context.label, err)
        return InvocationResult(state=plugin.state, error=err)
    return InvocationResult(state=plugin.state, manifest=manifest)
