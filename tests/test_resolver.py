"""Tests for the variable resolver."""

import pytest

from stack_plugin.context import InvocationContext
from stack_plugin.exceptions import UnresolvedVariable
from stack_plugin.resolver import Origin, VariableInfo, explain, resolve
from stack_plugin.template import Reference


CONTEXT = InvocationContext(
    app_name="demo",
    namespace="team-a",
    source_repo_url="https://github.com/example/widgets.git",
    target_revision="",
    parameters={"organization": "acme"},
    env={"REGION": "us-west-2"},
)


def test_resolve() -> None:
    """Test resolving fixed names and namespaced variables."""
    references = [
        Reference(name="ARGOCD_APP_NAME"),
        Reference(name="ARGOCD_APP_SOURCE_REPO_URL"),
        Reference(name="parameters.organization"),
        Reference(name="env.REGION"),
        Reference(name="ARGOCD_APP_NAME"),
    ]
    assert resolve(CONTEXT, references) == {
        "ARGOCD_APP_NAME": "demo",
        "ARGOCD_APP_SOURCE_REPO_URL": "https://github.com/example/widgets.git",
        "parameters.organization": "acme",
        "env.REGION": "us-west-2",
    }


def test_resolve_empty_value() -> None:
    """Test a variable set to an empty string is resolved."""
    references = [Reference(name="ARGOCD_APP_SOURCE_TARGET_REVISION")]
    assert resolve(CONTEXT, references) == {"ARGOCD_APP_SOURCE_TARGET_REVISION": ""}


def test_unresolved_variable() -> None:
    """Test a variable outside the context fails."""
    with pytest.raises(UnresolvedVariable) as exc_info:
        resolve(CONTEXT, [Reference(name="UNKNOWN_VAR")], source="stack.yaml")
    assert exc_info.value.name == "UNKNOWN_VAR"
    assert str(exc_info.value) == "Unresolved variable 'UNKNOWN_VAR' in template stack.yaml"


def test_unset_context_field() -> None:
    """Test a known variable that was not provided fails."""
    with pytest.raises(UnresolvedVariable, match="ARGOCD_APP_REVISION"):
        resolve(CONTEXT, [Reference(name="ARGOCD_APP_REVISION")])


def test_case_sensitive() -> None:
    """Test variable names are case sensitive."""
    with pytest.raises(UnresolvedVariable, match="argocd_app_name"):
        resolve(CONTEXT, [Reference(name="argocd_app_name")])
    with pytest.raises(UnresolvedVariable, match="parameters.Organization"):
        resolve(CONTEXT, [Reference(name="parameters.Organization")])


def test_first_unresolved_in_order() -> None:
    """Test the first missing reference in template order is reported."""
    references = [
        Reference(name="ARGOCD_APP_NAME"),
        Reference(name="parameters.project"),
        Reference(name="parameters.stack"),
    ]
    with pytest.raises(UnresolvedVariable) as exc_info:
        resolve(CONTEXT, references)
    assert exc_info.value.name == "parameters.project"


def test_declared_defaults() -> None:
    """Test declared defaults are used only when the context has no value."""
    references = [
        Reference(name="parameters.organization"),
        Reference(name="parameters.stack"),
    ]
    defaults = {"parameters.organization": "other", "parameters.stack": "dev"}
    assert resolve(CONTEXT, references, defaults) == {
        "parameters.organization": "acme",
        "parameters.stack": "dev",
    }


def test_inline_default_is_left_to_renderer() -> None:
    """Test a reference with an inline default does not need a value."""
    references = [Reference(name="parameters.stack", default="dev")]
    assert resolve(CONTEXT, references) == {}


def test_inline_default_does_not_cover_other_references() -> None:
    """Test an inline default applies only to the reference that declares it."""
    references = [
        Reference(name="parameters.stack", default="dev"),
        Reference(name="parameters.stack"),
    ]
    with pytest.raises(UnresolvedVariable, match="parameters.stack"):
        resolve(CONTEXT, references)


def test_explain() -> None:
    """Test describing how each variable resolves."""
    references = [
        Reference(name="ARGOCD_APP_NAME"),
        Reference(name="parameters.stack"),
        Reference(name="parameters.clusterRole", default="cluster-admin"),
        Reference(name="UNKNOWN_VAR"),
        Reference(name="ARGOCD_APP_NAME"),
    ]
    assert explain(CONTEXT, references, {"parameters.stack": "dev"}) == [
        VariableInfo("ARGOCD_APP_NAME", "demo", Origin.CONTEXT),
        VariableInfo("parameters.stack", "dev", Origin.DEFAULT),
        VariableInfo("parameters.clusterRole", "cluster-admin", Origin.INLINE),
        VariableInfo("UNKNOWN_VAR", None, Origin.UNRESOLVED),
    ]
