"""Fixtures shared by the stack-plugin tests."""

from collections.abc import Generator
import os
from pathlib import Path
import shutil

import pytest

from stack_plugin.config import CONFIG_ENV
from stack_plugin.context import InvocationContext

TESTDATA_DIR = Path("tests/testdata")


@pytest.fixture(autouse=True)
def clean_environ(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Remove any Argo CD plugin variables from the test environment."""
    for key in list(os.environ):
        if key.startswith("ARGOCD_") or key == CONFIG_ENV:
            monkeypatch.delenv(key)
    yield


@pytest.fixture
def app_source(tmp_path: Path) -> Path:
    """A copy of an application source using the builtin template."""
    path = tmp_path / "pulumi-app"
    shutil.copytree(TESTDATA_DIR / "pulumi-app", path)
    return path


@pytest.fixture
def custom_app_source(tmp_path: Path) -> Path:
    """A copy of an application source with its own templates."""
    path = tmp_path / "custom-app"
    shutil.copytree(TESTDATA_DIR / "custom-app", path)
    return path


@pytest.fixture
def context() -> InvocationContext:
    """Context for the demo application in the team-a namespace."""
    return InvocationContext(
        app_name="demo",
        namespace="team-a",
        source_repo_url="https://github.com/example/widgets.git",
        parameters={
            "organization": "acme",
            "project": "widgets",
            "stack": "prod",
        },
    )
