"""Keep pyproject.toml, requirements files and the environment in agreement."""

import importlib.metadata
import re
import tomllib
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.parent


def _normalize(requirement):
    return requirement.strip().lower().replace(' ', '')


def _project_name(requirement):
    name = re.split(r'==|>=|~=|<=|>|<', requirement)[0]
    return re.sub(r'\[.*\]', '', name).strip()


def read_requirements_txt(path):
    """Requirement lines from a requirements file, ignoring comments and includes."""
    if not path.exists():
        return set()
    found = set()
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith(('#', '-e', '-r', 'git+')):
            found.add(_normalize(line))
    return found


def read_pyproject(section):
    with open(ROOT / 'pyproject.toml', 'rb') as f:
        project = tomllib.load(f).get('project', {})
    if section == 'main':
        deps = project.get('dependencies', [])
    else:
        deps = project.get('optional-dependencies', {}).get(section, [])
    return {_normalize(d) for d in deps}


def test_runtime_requirements_match_pyproject():
    txt = read_requirements_txt(ROOT / 'requirements.txt')
    toml = read_pyproject('main')
    assert txt == toml, f"Only in TXT: {txt - toml}\nOnly in TOML: {toml - txt}"


def test_dev_requirements_match_pyproject():
    txt = read_requirements_txt(ROOT / 'requirements-dev.txt')
    toml = read_pyproject('dev')
    assert txt == toml, f"Only in TXT: {txt - toml}\nOnly in TOML: {toml - txt}"


def test_test_extra_matches_dev_extra():
    assert read_pyproject('test') == read_pyproject('dev')


def test_declared_packages_are_installed():
    missing = []
    for requirement in read_pyproject('main') | read_pyproject('dev'):
        name = _project_name(requirement)
        try:
            installed = importlib.metadata.version(name)
        except importlib.metadata.PackageNotFoundError:
            missing.append(f"{name} (not installed)")
            continue
        if '==' in requirement and installed != requirement.split('==')[1]:
            missing.append(f"{name} (installed {installed}, expected {requirement.split('==')[1]})")

    if missing:
        pytest.fail("Environment out of sync with pyproject.toml:\n" + "\n".join(missing))
