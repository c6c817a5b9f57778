"""Command line tool for running stack-plugin as an Argo CD Config Management Plugin."""

import argparse
import asyncio
import logging
import sys
import traceback
from typing import Any

import yaml

from stack_plugin.exceptions import DiscoveryMismatch, PluginException
from . import discover, generate, init, plugin_config, variables

_LOGGER = logging.getLogger(__name__)

NOT_APPLICABLE_EXIT_CODE = 2


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Argo CD Config Management Plugin that renders Pulumi Stacks.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    discover.DiscoverAction.register(subparsers)
    init.InitAction.register(subparsers)
    generate.GenerateAction.register(subparsers)
    variables.VarsAction.register(subparsers)
    plugin_config.PluginConfigAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Stack-plugin command line tool main entry point."""

    def str_presenter(dumper: yaml.Dumper, data: Any) -> Any:
        """Represent multi-line yaml strings as you'd expect.

        See https://github.com/yaml/pyyaml/issues/240
        """
        return dumper.represent_scalar(
            "tag:yaml.org,2002:str", data, style="|" if data.count("\n") > 0 else None
        )

    yaml.add_representer(str, str_presenter)

    parser = _make_parser()
    args = parser.parse_args(argv)

    # Diagnostics go to stderr, stdout is reserved for generated manifests
    if args.log_level:
        logging.basicConfig(level=args.log_level, stream=sys.stderr)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except DiscoveryMismatch as err:
        print("stack-plugin: ", err, file=sys.stderr)
        sys.exit(NOT_APPLICABLE_EXIT_CODE)
    except PluginException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("stack-plugin error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
