"""Exceptions related to stack-plugin."""

__all__ = [
    "PluginException",
    "InputException",
    "UnresolvedVariable",
    "TemplateSyntaxError",
    "ManifestValidationError",
    "EmptyDocument",
    "MissingRequiredField",
    "MalformedDocument",
    "EmbeddedSecret",
    "DiscoveryMismatch",
    "Cancelled",
    "IOFailure",
    "InvalidTransition",
]


class PluginException(Exception):
    """Generic base exception used for this library."""


class InputException(PluginException):
    """Raised when the configuration or parameters are not formatted as expected."""


class UnresolvedVariable(PluginException):
    """Raised when a template references a variable with no value or default."""

    def __init__(self, name: str, template: str | None = None) -> None:
        where = f" in template {template}" if template else ""
        super().__init__(f"Unresolved variable '{name}'{where}")
        self.name = name
        self.template = template


class TemplateSyntaxError(PluginException):
    """Raised when a template contains a malformed variable reference."""

    def __init__(self, template: str, line: int, column: int, message: str) -> None:
        super().__init__(f"{template}:{line}:{column}: {message}")
        self.template = template
        self.line = line
        self.column = column


class ManifestValidationError(PluginException):
    """Raised when a rendered document fails structural validation."""

    def __init__(self, document: str, message: str) -> None:
        super().__init__(f"Invalid document {document}: {message}")
        self.document = document


class EmptyDocument(ManifestValidationError):
    """Raised when a rendered document has no content."""

    def __init__(self, document: str) -> None:
        super().__init__(document, "document is empty")


class MissingRequiredField(ManifestValidationError):
    """Raised when a rendered document is missing apiVersion or kind."""

    def __init__(self, document: str, field: str) -> None:
        super().__init__(document, f"missing required field '{field}'")
        self.field = field


class MalformedDocument(ManifestValidationError):
    """Raised when a rendered document is not a valid yaml mapping."""


class EmbeddedSecret(ManifestValidationError):
    """Raised when a rendered document embeds secret material instead of a reference."""


class DiscoveryMismatch(PluginException):
    """Raised when the plugin is asked to run for a source it does not apply to.

    This is a negative match rather than a failure.
    """


class Cancelled(PluginException):
    """Raised when the invocation was cancelled between lifecycle steps."""


class IOFailure(PluginException):
    """Raised when the application source or a template can't be read."""


class InvalidTransition(PluginException):
    """Raised when a lifecycle operation is called out of order."""
