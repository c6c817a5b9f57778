"""Stack-plugin init action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import Any, cast

from stack_plugin.exceptions import DiscoveryMismatch
from stack_plugin.lifecycle import Plugin

from . import common

_LOGGER = logging.getLogger(__name__)


class InitAction:
    """Stack-plugin init action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "init",
                help="Prepare an application source before generating manifests",
                description="""Run discovery and the idempotent init step for an
                    application source. Safe to run more than once.""",
            ),
        )
        common.add_source_flags(args)
        common.add_context_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        path: pathlib.Path,
        config: pathlib.Path | None,
        param: dict[str, str] | None,
        env: dict[str, str] | None,
        timeout: float | None,
        **kwargs: Any,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        plugin_config = await common.load_config(config)
        context = common.build_context(param, env)
        plugin = Plugin(plugin_config, context, common.cancel_event(timeout))
        if not await plugin.discover(path):
            raise DiscoveryMismatch(
                f"Plugin {plugin_config.full_name} does not apply to {path}"
            )
        await plugin.init()
        _LOGGER.info("Initialized %s in %s", context.label, plugin.state_file)
