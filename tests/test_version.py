from pathlib import Path

import questlog


def _pyproject_version() -> str:
    pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
    section = ""
    for line in pyproject.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped.startswith("["):
            section = stripped
        elif section == "[project]" and stripped.startswith("version"):
            return stripped.split('"')[1]
    raise AssertionError("pyproject.toml has no [project] version")


def test_version_matches_pyproject() -> None:
    assert questlog.__version__ == _pyproject_version()


def test_public_api_exports() -> None:
    for name in questlog.__all__:
        assert hasattr(questlog, name), name
