"""Validate rendered documents and produce the plugin output.

The emitter is the last step of `generate`. Each rendered document must parse
as a single YAML mapping with a non-empty `apiVersion` and `kind`. Secret
material must be referenced, not embedded. Validation is all or nothing: the
first invalid document fails the whole manifest and nothing is emitted.
"""

from collections.abc import Iterable
import logging
from typing import Any

import yaml

from .exceptions import (
    EmbeddedSecret,
    EmptyDocument,
    MalformedDocument,
    MissingRequiredField,
)
from .manifest import (
    EmittedManifest,
    NamedResource,
    RenderedDocument,
    RenderedManifest,
    SECRET_KIND,
    STACK_DOMAIN,
    STACK_KIND,
)

__all__ = [
    "emit",
    "REQUIRED_FIELDS",
    "DEFAULT_SECRET_ENV_NAMES",
]

_LOGGER = logging.getLogger(__name__)

REQUIRED_FIELDS = ("apiVersion", "kind")
METADATA_FIELDS = ("name", "namespace")
DEFAULT_SECRET_ENV_NAMES = ("PULUMI_ACCESS_TOKEN",)
LITERAL_REF_TYPE = "Literal"


def _parse(document: RenderedDocument) -> dict[str, Any]:
    try:
        obj = yaml.safe_load(document.content)
    except yaml.YAMLError as err:
        raise MalformedDocument(document.id, f"not valid yaml: {err}") from err
    if obj is None or obj == {}:
        raise EmptyDocument(document.id)
    if not isinstance(obj, dict):
        raise MalformedDocument(
            document.id, f"expected a mapping but was {type(obj).__name__}"
        )
    return obj


def _check_required(document: RenderedDocument, obj: dict[str, Any]) -> None:
    for field in REQUIRED_FIELDS:
        value = obj.get(field)
        if not isinstance(value, str) or not value.strip():
            raise MissingRequiredField(document.id, field)


def _check_metadata(document: RenderedDocument, obj: dict[str, Any]) -> None:
    if (metadata := obj.get("metadata")) is None:
        return
    if not isinstance(metadata, dict):
        raise MalformedDocument(
            document.id, f"metadata must be a mapping but was {type(metadata).__name__}"
        )
    for field in METADATA_FIELDS:
        value = metadata.get(field)
        if value is not None and not isinstance(value, str):
            raise MalformedDocument(
                document.id,
                f"metadata.{field} must be a string but was {type(value).__name__}",
            )


def _check_secret_references(
    document: RenderedDocument, obj: dict[str, Any], secret_env_names: set[str]
) -> None:
    """Reject objects that carry secret values rather than references."""
    if obj["kind"] == SECRET_KIND and (obj.get("data") or obj.get("stringData")):
        raise EmbeddedSecret(
            document.id, "Secret values must be managed outside of the manifest"
        )
    if obj["kind"] != STACK_KIND or not obj["apiVersion"].startswith(STACK_DOMAIN):
        return
    spec = obj.get("spec")
    if not isinstance(spec, dict) or not isinstance(
        env_refs := spec.get("envRefs"), dict
    ):
        return
    for name, ref in env_refs.items():
        if (
            name in secret_env_names
            and isinstance(ref, dict)
            and ref.get("type") == LITERAL_REF_TYPE
        ):
            raise EmbeddedSecret(
                document.id,
                f"spec.envRefs.{name} must reference a Secret, not a literal value",
            )


def emit(
    manifest: RenderedManifest,
    secret_env_names: Iterable[str] = DEFAULT_SECRET_ENV_NAMES,
) -> EmittedManifest:
    """Validate every rendered document and return the objects in order."""
    secret_names = set(secret_env_names)
    objects: list[dict[str, Any]] = []
    seen: dict[NamedResource, str] = {}
    for document in manifest.documents:
        obj = _parse(document)
        _check_required(document, obj)
        _check_metadata(document, obj)
        _check_secret_references(document, obj, secret_names)
        if (resource := NamedResource.parse_doc(obj)) is not None:
            if (previous := seen.get(resource)) is not None:
                raise MalformedDocument(
                    document.id, f"duplicate resource {resource} (see {previous})"
                )
            seen[resource] = document.id
        objects.append(obj)
    _LOGGER.debug("Emitting %d documents", len(objects))
    return EmittedManifest(documents=objects)
