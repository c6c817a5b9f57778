"""Stack-plugin discover action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
import sys
from typing import Any, cast

from stack_plugin.lifecycle import Plugin

from . import common

_LOGGER = logging.getLogger(__name__)


class DiscoverAction:
    """Stack-plugin discover action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "discover",
                help="Check if the plugin applies to an application source",
                description="""Print the files that match plugin discovery. Nothing
                    is printed when the plugin does not apply, following the
                    Argo CD discover command contract.""",
            ),
        )
        common.add_source_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        path: pathlib.Path,
        config: pathlib.Path | None,
        **kwargs: Any,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        plugin = Plugin(await common.load_config(config), common.build_context())
        if not await plugin.discover(path):
            return
        for marker in plugin.markers:
            print(marker.relative_to(path), file=sys.stdout)
