"""
Packaging metadata checks
"""

import importlib
from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def project():
    with open(ROOT / "pyproject.toml", "rb") as f:
        return tomllib.load(f)["project"]


def test_readme_is_not_a_requirements_document(project):
    readme = project.get("readme")
    if readme is not None:
        assert readme.lower().startswith("readme")
        assert (ROOT / readme).exists()


def test_console_scripts_resolve(project):
    """Test every console script points at an importable callable"""
    for name, target in project["scripts"].items():
        module_name, _, attr = target.partition(":")
        module = importlib.import_module(module_name)
        assert callable(getattr(module, attr)), name
