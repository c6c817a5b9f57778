"""Resolve the variables referenced by a template against an invocation context.

Values are taken from the `InvocationContext` first, then from the declared
defaults (plugin parameter defaults keyed as `parameters.<name>`). A reference
carrying an inline `${NAME:-default}` is left for the renderer to fill in.
Anything else is an `UnresolvedVariable` error.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
import logging
from typing import TYPE_CHECKING

from .context import InvocationContext
from .exceptions import UnresolvedVariable

if TYPE_CHECKING:
    from .template import Reference

__all__ = [
    "resolve",
    "explain",
    "Origin",
    "VariableInfo",
]

_LOGGER = logging.getLogger(__name__)


class Origin(StrEnum):
    """Where the value of a variable comes from."""

    CONTEXT = "context"
    DEFAULT = "default"
    INLINE = "inline"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class VariableInfo:
    """A referenced variable and how it resolves."""

    name: str
    value: str | None
    origin: Origin


def _lookup(
    context: InvocationContext, name: str, defaults: Mapping[str, str]
) -> tuple[str | None, Origin]:
    if (value := context.lookup(name)) is not None:
        return value, Origin.CONTEXT
    if (value := defaults.get(name)) is not None:
        return value, Origin.DEFAULT
    return None, Origin.UNRESOLVED


def resolve(
    context: InvocationContext,
    references: Iterable["Reference"],
    defaults: Mapping[str, str] | None = None,
    *,
    source: str | None = None,
) -> dict[str, str]:
    """Return the value of every referenced variable.

    Raises UnresolvedVariable for the first reference, in template order, that
    has no value in the context, no declared default and no inline default.
    """
    defaults = defaults or {}
    result: dict[str, str] = {}
    for ref in references:
        if ref.name in result:
            continue
        value, origin = _lookup(context, ref.name, defaults)
        if value is None:
            if ref.default is not None:
                continue
            raise UnresolvedVariable(ref.name, source)
        _LOGGER.debug("Resolved %s from %s", ref.name, origin)
        result[ref.name] = value
    return result


def explain(
    context: InvocationContext,
    references: Iterable["Reference"],
    defaults: Mapping[str, str] | None = None,
) -> list[VariableInfo]:
    """Describe how each referenced variable resolves without failing."""
    defaults = defaults or {}
    seen: dict[str, VariableInfo] = {}
    for ref in references:
        info = seen.get(ref.name)
        if info is not None and (
            info.origin != Origin.INLINE or ref.default is not None
        ):
            continue
        value, origin = _lookup(context, ref.name, defaults)
        if not value and ref.default is not None:
            value, origin = ref.default, Origin.INLINE
        seen[ref.name] = VariableInfo(name=ref.name, value=value, origin=origin)
    return list(seen.values())
