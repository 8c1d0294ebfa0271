"""Tests for the project metadata."""

import tomllib
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


class TestProjectMetadata:
    """Tests for pyproject.toml."""

    def test_readme_is_the_service_readme(self):
        project = tomllib.loads((ROOT / "pyproject.toml").read_text())["project"]

        assert project["readme"] == "README.md"
        assert (ROOT / project["readme"]).is_file()
