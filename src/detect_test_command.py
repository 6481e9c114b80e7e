import json
import logging
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger("DetectTestCommand")

NPM_PLACEHOLDER_TEST = 'echo "Error: no test specified" && exit 1'


def _read_json(path: Path) -> Optional[dict]:
    try:
        with open(path, encoding='utf8') as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.debug(f"Ignoring unreadable {path}: {e}")
        return None


def _has_npm_test_script(path: Path) -> bool:
    pkg = _read_json(path)
    if not isinstance(pkg, dict):
        return False
    scripts = pkg.get('scripts')
    if not isinstance(scripts, dict):
        return False
    test = scripts.get('test')
    return bool(test) and test != NPM_PLACEHOLDER_TEST


def detect_test_command(workspace_path) -> Optional[dict]:
    """Guess how to run a project's tests from the marker files at its root.

    Returns the highest-priority ``{cmd, type, lang, priority}`` or None when
    nothing is recognized. Ties keep detection order.
    """
    root = Path(workspace_path)
    if not root.is_dir():
        return None

    def exists(name: str) -> bool:
        return (root / name).exists()

    def has_suffix(*suffixes: str) -> bool:
        try:
            return any(p.suffix in suffixes for p in root.iterdir() if p.is_file())
        except OSError as e:
            logger.debug(f"Cannot list {root}: {e}")
            return False

    detected: List[dict] = []

    # JavaScript / TypeScript
    if exists('package.json') and _has_npm_test_script(root / 'package.json'):
        detected.append({'cmd': 'npm test', 'type': 'npm', 'lang': 'JavaScript/TypeScript', 'priority': 10})
    if exists('deno.json') or exists('deno.jsonc'):
        detected.append({'cmd': 'deno test', 'type': 'deno', 'lang': 'Deno', 'priority': 10})

    # Python
    if exists('pyproject.toml') or exists('setup.py') or exists('requirements.txt'):
        if exists('pytest.ini') or exists('pyproject.toml'):
            detected.append({'cmd': 'pytest', 'type': 'pytest', 'lang': 'Python', 'priority': 10})
        else:
            detected.append({'cmd': 'python -m pytest', 'type': 'python', 'lang': 'Python', 'priority': 8})

    if exists('Cargo.toml'):
        detected.append({'cmd': 'cargo test', 'type': 'cargo', 'lang': 'Rust', 'priority': 10})
    if exists('go.mod'):
        detected.append({'cmd': 'go test ./...', 'type': 'go', 'lang': 'Go', 'priority': 10})

    # Java / Kotlin
    if exists('pom.xml'):
        detected.append({'cmd': 'mvn test', 'type': 'maven', 'lang': 'Java/Kotlin', 'priority': 10})
    if exists('build.gradle') or exists('build.gradle.kts'):
        detected.append({'cmd': './gradlew test', 'type': 'gradle', 'lang': 'Java/Kotlin', 'priority': 10})

    if has_suffix('.csproj', '.sln'):
        detected.append({'cmd': 'dotnet test', 'type': 'dotnet', 'lang': '.NET', 'priority': 10})

    # Generic fallback
    if exists('Makefile'):
        detected.append({'cmd': 'make test', 'type': 'make', 'lang': 'Make', 'priority': 6})

    if not detected:
        return None
    best = sorted(detected, key=lambda d: d['priority'], reverse=True)[0]
    logger.debug(f"Detected {len(detected)} test commands in {root}, using {best['cmd']!r}")
    return best
