"""Library for parsing and rendering manifest templates.

A template is YAML text with variable references in the style of `envsubst`:

```yaml
apiVersion: pulumi.com/v1
kind: Stack
metadata:
  name: ${ARGOCD_APP_NAME}
spec:
  stack: ${parameters.organization}/${parameters.project}/${parameters.stack}
  branch: ${ARGOCD_APP_SOURCE_TARGET_REVISION:-main}
```

Unlike `envsubst`, a reference to a variable that has no value and no default
is an error rather than an empty string. Use `$${` to write a literal `${`.

Templates are split into documents on `---` lines when parsed, so the number
and order of rendered documents always match the template regardless of the
substituted values:

```python
from stack_plugin import template

tmpl = template.ManifestTemplate.parse("stack.yaml.envsubst", content)
manifest = tmpl.render({"ARGOCD_APP_NAME": "demo", ...})
```
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import logging
from pathlib import Path
import re

import aiofiles

from .context import InvocationContext
from .exceptions import IOFailure, TemplateSyntaxError, UnresolvedVariable
from .manifest import RenderedDocument, RenderedManifest
from .resolver import resolve

__all__ = [
    "Literal",
    "Reference",
    "ManifestTemplate",
    "read_template",
    "find_templates",
    "render_templates",
    "BUILTIN_TEMPLATE",
]

_LOGGER = logging.getLogger(__name__)

BUILTIN_TEMPLATE = Path(__file__).parent / "templates" / "stack.yaml.envsubst"

REFERENCE_START = "${"
REFERENCE_END = "}"
ESCAPED_START = "$${"
DEFAULT_SEPARATOR = ":-"

_DELIMITER_RE = re.compile(r"^---[ \t]*(#.*)?$")
_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z0-9_][A-Za-z0-9_\-]*)*$")


@dataclass(frozen=True)
class Literal:
    """Literal template text."""

    text: str


@dataclass(frozen=True)
class Reference:
    """A variable reference such as `${NAME}` or `${NAME:-default}`."""

    name: str
    """The variable name, possibly namespaced e.g. `parameters.stack`."""

    default: str | None = None
    """The inline default used when the variable is unset or empty."""

    line: int = 0
    column: int = 0


Segment = Literal | Reference


@dataclass
class TemplateDocument:
    """A block of template text that renders to a single YAML document."""

    index: int
    line: int
    """The first line of the block in the template."""

    segments: list[Segment] = field(default_factory=list)

    @property
    def references(self) -> list[Reference]:
        return [seg for seg in self.segments if isinstance(seg, Reference)]


@dataclass
class ManifestTemplate:
    """A parsed template made of one or more documents."""

    name: str
    documents: list[TemplateDocument] = field(default_factory=list)

    @classmethod
    def parse(cls, name: str, content: str) -> "ManifestTemplate":
        """Parse the template text, raising TemplateSyntaxError on bad references."""
        blocks = _split_documents(content)
        documents = [
            TemplateDocument(
                index=index, line=start, segments=_tokenize(name, lines, start)
            )
            for index, (start, lines) in enumerate(blocks)
        ]
        _LOGGER.debug("Parsed template %s with %d documents", name, len(documents))
        return cls(name=name, documents=documents)

    @property
    def references(self) -> list[Reference]:
        """All variable references in template order."""
        return [ref for doc in self.documents for ref in doc.references]

    @property
    def variable_names(self) -> set[str]:
        """The set of variable names referenced by the template."""
        return {ref.name for ref in self.references}

    def render(self, variables: Mapping[str, str]) -> RenderedManifest:
        """Substitute the resolved variables into each document."""
        rendered = []
        for doc in self.documents:
            parts = []
            for segment in doc.segments:
                if isinstance(segment, Literal):
                    parts.append(segment.text)
                    continue
                parts.append(self._substitute(segment, variables))
            rendered.append(
                RenderedDocument(
                    template=self.name, index=doc.index, content="".join(parts)
                )
            )
        return RenderedManifest(documents=rendered)

    def _substitute(self, ref: Reference, variables: Mapping[str, str]) -> str:
        value = variables.get(ref.name)
        if ref.default is not None and not value:
            return ref.default
        if value is None:
            raise UnresolvedVariable(ref.name, self.name)
        return value


def _is_framing(lines: list[str]) -> bool:
    """Return True for a block with only whitespace and comments."""
    return all(not line.strip() or line.lstrip().startswith("#") for line in lines)


def _split_documents(content: str) -> list[tuple[int, list[str]]]:
    """Split template text on document delimiters, keeping start line numbers."""
    blocks: list[tuple[int, list[str]]] = []
    current: list[str] = []
    start = 1
    for lineno, line in enumerate(content.splitlines(keepends=True), start=1):
        if _DELIMITER_RE.match(line.rstrip("\r\n")):
            blocks.append((start, current))
            current = []
            start = lineno + 1
            continue
        current.append(line)
    blocks.append((start, current))
    # Content before the first delimiter or after the last is only a document
    # when it has something other than comments.
    if blocks and _is_framing(blocks[0][1]):
        blocks.pop(0)
    if blocks and _is_framing(blocks[-1][1]):
        blocks.pop()
    return blocks


def _tokenize(name: str, lines: list[str], first_line: int) -> list[Segment]:
    """Split the lines of a document into literal text and references."""
    segments: list[Segment] = []
    literal: list[str] = []
    for offset, line in enumerate(lines):
        lineno = first_line + offset
        pos = 0
        while (idx := line.find("$", pos)) != -1:
            if line.startswith(ESCAPED_START, idx):
                literal.append(line[pos:idx] + REFERENCE_START)
                pos = idx + len(ESCAPED_START)
                continue
            if not line.startswith(REFERENCE_START, idx):
                literal.append(line[pos : idx + 1])
                pos = idx + 1
                continue
            column = idx + 1
            end = line.find(REFERENCE_END, idx + len(REFERENCE_START))
            if end == -1:
                raise TemplateSyntaxError(
                    name, lineno, column, "unterminated variable reference"
                )
            body = line[idx + len(REFERENCE_START) : end]
            var, sep, default = body.partition(DEFAULT_SEPARATOR)
            if not var:
                raise TemplateSyntaxError(
                    name, lineno, column, "empty variable reference"
                )
            if not _NAME_RE.match(var):
                raise TemplateSyntaxError(
                    name, lineno, column, f"invalid variable name '{var}'"
                )
            if REFERENCE_START in default:
                raise TemplateSyntaxError(
                    name, lineno, column, "nested variable references are not supported"
                )
            literal.append(line[pos:idx])
            if text := "".join(literal):
                segments.append(Literal(text))
            literal = []
            segments.append(
                Reference(
                    name=var,
                    default=default if sep else None,
                    line=lineno,
                    column=column,
                )
            )
            pos = end + len(REFERENCE_END)
        literal.append(line[pos:])
    if text := "".join(literal):
        segments.append(Literal(text))
    return segments


async def read_template(path: Path, name: str | None = None) -> ManifestTemplate:
    """Read and parse a template file."""
    try:
        async with aiofiles.open(str(path)) as template_file:
            content = await template_file.read()
    except (OSError, UnicodeDecodeError) as err:
        raise IOFailure(f"Unable to read template {path}: {err}") from err
    return ManifestTemplate.parse(name or path.name, content)


def find_templates(source_path: Path, patterns: Iterable[str]) -> list[Path]:
    """Return the template files in the source root matching the patterns.

    Files are returned sorted by path so output order is stable.
    """
    found: set[Path] = set()
    for pattern in patterns:
        found.update(path for path in source_path.glob(pattern) if path.is_file())
    return sorted(found)


def render_templates(
    templates: Iterable[ManifestTemplate],
    context: InvocationContext,
    defaults: Mapping[str, str] | None = None,
) -> RenderedManifest:
    """Resolve variables for each template and render them in order."""
    result = RenderedManifest()
    for tmpl in templates:
        variables = resolve(context, tmpl.references, defaults, source=tmpl.name)
        result.extend(tmpl.render(variables))
    return result
