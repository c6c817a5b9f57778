"""Stack-plugin plugin-config action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
from typing import Any, cast

from .format import YamlFormatter
from . import common

_LOGGER = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "argocd"


class PluginConfigAction:
    """Stack-plugin plugin-config action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "plugin-config",
                help="Print the Argo CD ConfigManagementPlugin definition",
                description="""Print the ConfigManagementPlugin definition that
                    registers this tool with the Argo CD repo-server sidecar,
                    optionally wrapped in a ConfigMap.""",
            ),
        )
        args.add_argument(
            "--config",
            help="Plugin configuration file",
            type=pathlib.Path,
            default=None,
        )
        args.add_argument(
            "--configmap",
            type=str,
            default=None,
            help="Wrap the definition in a ConfigMap with this name",
        )
        args.add_argument(
            "--namespace",
            "-n",
            type=str,
            default=DEFAULT_NAMESPACE,
            help="Namespace of the ConfigMap",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(
        self,
        config: pathlib.Path | None,
        configmap: str | None,
        namespace: str,
        **kwargs: Any,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        plugin_config = await common.load_config(config)
        if configmap:
            doc = plugin_config.config_map(configmap, namespace)
        else:
            doc = plugin_config.plugin_manifest()
        YamlFormatter().print([doc])
