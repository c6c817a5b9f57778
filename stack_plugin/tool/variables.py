"""Stack-plugin vars action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
import sys
from typing import Any, cast

from stack_plugin.exceptions import DiscoveryMismatch
from stack_plugin.lifecycle import Plugin
from stack_plugin.resolver import explain

from . import common
from .format import FORMATTERS

_LOGGER = logging.getLogger(__name__)

UNRESOLVED = "<unresolved>"


class VarsAction:
    """Stack-plugin vars action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "vars",
                help="Show the variables referenced by the templates",
                description="""Print each variable referenced by the templates of
                    an application source with its value and where the value
                    comes from. Useful for diagnosing unresolved variables.""",
            ),
        )
        common.add_source_flags(args)
        common.add_context_flags(args)
        args.add_argument(
            "--output",
            "-o",
            choices=sorted(FORMATTERS),
            default="table",
            help="Output format of the command",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        path: pathlib.Path,
        config: pathlib.Path | None,
        param: dict[str, str] | None,
        env: dict[str, str] | None,
        output: str,
        **kwargs: Any,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        plugin_config = await common.load_config(config)
        context = common.build_context(param, env)
        plugin = Plugin(plugin_config, context)
        if not await plugin.discover(path):
            raise DiscoveryMismatch(
                f"Plugin {plugin_config.full_name} does not apply to {path}"
            )

        results: list[dict[str, Any]] = []
        for template in await plugin.read_templates():
            for info in explain(context, template.references, plugin_config.defaults):
                results.append(
                    {
                        "template": template.name,
                        "name": info.name,
                        "value": info.value if info.value is not None else UNRESOLVED,
                        "origin": str(info.origin),
                    }
                )

        if not results:
            print("No variables referenced by templates", file=sys.stderr)
            return

        FORMATTERS[output]().print(results)
