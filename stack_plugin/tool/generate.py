"""Stack-plugin generate action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
import sys
from typing import Any, cast

from stack_plugin.exceptions import DiscoveryMismatch
from stack_plugin.lifecycle import invoke

from . import common

_LOGGER = logging.getLogger(__name__)


class GenerateAction:
    """Stack-plugin generate action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "generate",
                help="Generate the manifests for an application source",
                description="""Run discover, init and generate for an application
                    source and write the manifests as a YAML stream. Nothing is
                    written unless every document renders and validates.""",
            ),
        )
        common.add_source_flags(args)
        common.add_context_flags(args)
        args.add_argument(
            "--output-file",
            type=pathlib.Path,
            default=None,
            help="Output file for the manifests, defaults to stdout",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        path: pathlib.Path,
        config: pathlib.Path | None,
        param: dict[str, str] | None,
        env: dict[str, str] | None,
        timeout: float | None,
        output_file: pathlib.Path | None,
        **kwargs: Any,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        plugin_config = await common.load_config(config)
        result = await invoke(
            plugin_config,
            common.build_context(param, env),
            path,
            common.cancel_event(timeout),
        )
        if result.not_applicable:
            raise DiscoveryMismatch(
                f"Plugin {plugin_config.full_name} does not apply to {path}"
            )
        if result.error is not None:
            raise result.error

        if output_file is None:
            print(result.output, end="", file=sys.stdout)
            return
        with output_file.open("w") as file:
            print(result.output, end="", file=file)
