"""Representation of the manifests produced by the plugin.

Rendering produces a `RenderedManifest`: the raw text of each document in
template order. The emitter validates those documents and produces an
`EmittedManifest`, the parsed objects that are written to stdout for the
GitOps controller to apply.
"""

from dataclasses import dataclass, field
import logging
from typing import Any

import yaml

__all__ = [
    "NamedResource",
    "RenderedDocument",
    "RenderedManifest",
    "EmittedManifest",
]

_LOGGER = logging.getLogger(__name__)


SECRET_KIND = "Secret"
STACK_KIND = "Stack"
STACK_DOMAIN = "pulumi.com"
SYNC_WAVE_ANNOTATION = "argocd.argoproj.io/sync-wave"


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "NamedResource | None":
        """Return the identifier of a kubernetes object, if it has a name."""
        metadata = doc.get("metadata")
        if not isinstance(metadata, dict) or not (name := metadata.get("name")):
            return None
        return cls(kind=doc["kind"], namespace=metadata.get("namespace"), name=name)

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass(frozen=True)
class RenderedDocument:
    """A single document produced by substituting variables into a template."""

    template: str
    """The name of the template the document was rendered from."""

    index: int
    """The position of the document within its template."""

    content: str
    """The rendered document text, without delimiters."""

    @property
    def id(self) -> str:
        """Identifier of the document used in error messages."""
        return f"{self.template}[{self.index}]"


@dataclass
class RenderedManifest:
    """Ordered rendered documents from one or more templates."""

    documents: list[RenderedDocument] = field(default_factory=list)

    def extend(self, other: "RenderedManifest") -> None:
        """Append the documents of another manifest, preserving order."""
        self.documents.extend(other.documents)

    def __len__(self) -> int:
        return len(self.documents)


@dataclass
class EmittedManifest:
    """Validated kubernetes objects, in output order."""

    documents: list[dict[str, Any]] = field(default_factory=list)

    @property
    def resources(self) -> list[NamedResource]:
        """Identifiers of the named objects in the manifest."""
        return [
            resource
            for doc in self.documents
            if (resource := NamedResource.parse_doc(doc)) is not None
        ]

    def yaml(self) -> str:
        """Return the objects as a multi-document YAML stream."""
        if not self.documents:
            return ""
        return yaml.dump_all(self.documents, sort_keys=False, explicit_start=True)

    def __len__(self) -> int:
        return len(self.documents)
