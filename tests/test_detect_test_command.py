import json
from pathlib import Path

import pytest

from detect_test_command import NPM_PLACEHOLDER_TEST, detect_test_command


def _write(root, name, content=''):
    path = root / name
    path.write_text(content, encoding='utf8')
    return path


def _package_json(root, scripts):
    _write(root, 'package.json', json.dumps({'name': 'demo', 'scripts': scripts}))


def test_npm_test_script(tmp_path):
    _package_json(tmp_path, {'test': 'jest'})
    assert detect_test_command(tmp_path) == {
        'cmd': 'npm test', 'type': 'npm', 'lang': 'JavaScript/TypeScript', 'priority': 10,
    }


def test_npm_placeholder_script_is_ignored(tmp_path):
    _package_json(tmp_path, {'test': NPM_PLACEHOLDER_TEST})
    assert detect_test_command(tmp_path) is None


def test_package_json_without_test_script(tmp_path):
    _package_json(tmp_path, {'build': 'tsc'})
    assert detect_test_command(tmp_path) is None


def test_malformed_package_json(tmp_path):
    _write(tmp_path, 'package.json', '{"scripts": {"test": ')
    assert detect_test_command(tmp_path) is None


def test_deno(tmp_path):
    _write(tmp_path, 'deno.jsonc', '{}')
    assert detect_test_command(tmp_path)['cmd'] == 'deno test'


def test_pyproject_uses_pytest(tmp_path):
    _write(tmp_path, 'pyproject.toml', '[project]\nname = "demo"\n')
    assert detect_test_command(tmp_path) == {'cmd': 'pytest', 'type': 'pytest', 'lang': 'Python', 'priority': 10}


def test_setup_py_with_pytest_ini_uses_pytest(tmp_path):
    _write(tmp_path, 'setup.py')
    _write(tmp_path, 'pytest.ini', '[pytest]\n')
    assert detect_test_command(tmp_path)['cmd'] == 'pytest'


def test_requirements_only_uses_python_module(tmp_path):
    _write(tmp_path, 'requirements.txt', 'requests\n')
    assert detect_test_command(tmp_path) == {
        'cmd': 'python -m pytest', 'type': 'python', 'lang': 'Python', 'priority': 8,
    }


@pytest.mark.parametrize('marker,cmd', [
    ('Cargo.toml', 'cargo test'),
    ('go.mod', 'go test ./...'),
    ('pom.xml', 'mvn test'),
    ('build.gradle', './gradlew test'),
    ('build.gradle.kts', './gradlew test'),
    ('App.csproj', 'dotnet test'),
    ('Solution.sln', 'dotnet test'),
    ('Makefile', 'make test'),
])
def test_single_marker(tmp_path, marker, cmd):
    _write(tmp_path, marker)
    assert detect_test_command(tmp_path)['cmd'] == cmd


def test_npm_wins_over_makefile(tmp_path):
    _write(tmp_path, 'Makefile', 'test:\n\techo ok\n')
    _package_json(tmp_path, {'test': 'vitest run'})
    assert detect_test_command(tmp_path)['cmd'] == 'npm test'


def test_pytest_wins_over_makefile(tmp_path):
    _write(tmp_path, 'Makefile')
    _write(tmp_path, 'requirements.txt')
    assert detect_test_command(tmp_path)['cmd'] == 'python -m pytest'


def test_ties_keep_detection_order(tmp_path):
    _package_json(tmp_path, {'test': 'jest'})
    _write(tmp_path, 'Cargo.toml')
    assert detect_test_command(tmp_path)['cmd'] == 'npm test'


def test_csproj_in_subdirectory_is_not_a_marker(tmp_path):
    (tmp_path / 'src').mkdir()
    _write(tmp_path / 'src', 'App.csproj')
    assert detect_test_command(tmp_path) is None


def test_empty_workspace(tmp_path):
    assert detect_test_command(tmp_path) is None


def test_missing_workspace(tmp_path):
    assert detect_test_command(tmp_path / 'nope') is None
    assert detect_test_command(str(tmp_path / 'nope')) is None


def test_unlistable_workspace_skips_suffix_markers(tmp_path, monkeypatch):
    _write(tmp_path, 'Makefile')

    def deny(self):
        raise PermissionError(13, 'Permission denied', str(self))
    monkeypatch.setattr(Path, 'iterdir', deny)

    assert detect_test_command(tmp_path)['cmd'] == 'make test'
