"""Library for flags and setup shared by the stack-plugin commands."""

from argparse import Action, ArgumentError, ArgumentParser, Namespace
import asyncio
import logging
import os
import pathlib
from typing import Any

from stack_plugin.config import CONFIG_ENV, PluginConfig, read_config
from stack_plugin.context import InvocationContext

_LOGGER = logging.getLogger(__name__)


class KeyValueAppendAction(Action):
    """Append a key=value pair to the argument dict."""

    def __call__(
        self,
        parser: ArgumentParser,
        namespace: Namespace,
        values: Any,
        option_string: str | None = None,
    ) -> None:
        values = values.split(",")
        if not values[0]:
            return
        result = getattr(namespace, self.dest) or {}
        for value in values:
            if "=" not in value:
                raise ArgumentError(
                    self, f"Expected key=value format but got '{value}'"
                )
            k, v = value.split("=", 1)
            result[k] = v
        setattr(namespace, self.dest, result)


def add_source_flags(args: ArgumentParser) -> None:
    """Add flags for locating the application source and plugin config."""
    args.add_argument(
        "--path",
        help="Path to the application source, defaults to the working directory",
        type=pathlib.Path,
        default=pathlib.Path("."),
    )
    args.add_argument(
        "--config",
        help=f"Plugin configuration file, defaults to ${CONFIG_ENV} when set",
        type=pathlib.Path,
        default=None,
    )


def add_context_flags(args: ArgumentParser) -> None:
    """Add flags that override the invocation context from the environment."""
    args.add_argument(
        "--param",
        action=KeyValueAppendAction,
        default=None,
        help="Set a plugin parameter as key=value, overriding ARGOCD_APP_PARAMETERS",
    )
    args.add_argument(
        "--env",
        action=KeyValueAppendAction,
        default=None,
        help="Set a plugin environment entry as key=value, overriding ARGOCD_ENV_*",
    )
    args.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Cancel the invocation after this many seconds",
    )


async def load_config(config: pathlib.Path | None) -> PluginConfig:
    """Load the plugin configuration from a flag, the environment or defaults."""
    if config is None and (env_config := os.environ.get(CONFIG_ENV)):
        config = pathlib.Path(env_config)
    if config is None:
        return PluginConfig()
    return await read_config(config)


def build_context(
    param: dict[str, str] | None = None, env: dict[str, str] | None = None
) -> InvocationContext:
    """Build the invocation context from the process environment and flags."""
    return InvocationContext.from_environ(os.environ, parameters=param, env=env)


def cancel_event(timeout: float | None) -> asyncio.Event:
    """Return an event that is set once the timeout expires."""
    cancel = asyncio.Event()
    if timeout is not None:
        asyncio.get_running_loop().call_later(timeout, cancel.set)
    return cancel
