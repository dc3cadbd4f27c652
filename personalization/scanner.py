"""Project directory scanning: tech stack and AI needs inference."""

import json
import logging
import re
import tomllib
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)

MAX_SCAN_DEPTH = 3
README_SCAN_DEPTH = 2

SKIPPED_DIRS = {"node_modules", "vendor", "bower_components", "__pycache__", "venv", "site-packages"}

JS_FRAMEWORKS = [
    ("react", "React"),
    ("vue", "Vue"),
    ("angular", "Angular"),
    ("express", "Express"),
    ("next", "Next.js"),
]

PYTHON_FRAMEWORKS = [
    ("django", "Django"),
    ("flask", "Flask"),
    ("fastapi", "FastAPI"),
    ("torch", "PyTorch"),
    ("tensorflow", "TensorFlow"),
]

PYTHON_MANIFESTS = {"requirements.txt", "pyproject.toml", "setup.py", "Pipfile"}

MANIFEST_LANGUAGES = [
    ({"go.mod"}, "Go"),
    ({"Cargo.toml"}, "Rust"),
    ({"pom.xml", "build.gradle"}, "Java"),
]

EXTENSION_LANGUAGES = [
    ({".ts", ".tsx"}, "TypeScript"),
    ({".py"}, "Python"),
    ({".java"}, "Java"),
    ({".go"}, "Go"),
    ({".rs"}, "Rust"),
    ({".cpp", ".cc"}, "C++"),
]

# README keyword clusters and the needs they imply, in reporting order
NEED_CLUSTERS = [
    (("chat", "conversation"), ["LLM integration", "natural language processing"]),
    (("image", "vision"), ["computer vision", "image processing"]),
    (("recommendation",), ["recommendation system", "personalization"]),
    (("search",), ["semantic search", "embeddings"]),
    (("analysis", "analytics"), ["data analysis", "machine learning"]),
    (("translation",), ["language translation"]),
    (("sentiment",), ["sentiment analysis"]),
]

DEFAULT_NEEDS = ["general AI capabilities", "automation"]

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


def walk_directory(root: Path, max_depth: int = MAX_SCAN_DEPTH, _depth: int = 0) -> List[Path]:
    """Collect files below `root`, descending at most `max_depth` levels.

    Dot entries and dependency directories are skipped, as is anything
    that cannot be read.
    """
    if _depth >= max_depth:
        return []

    try:
        entries = sorted(root.iterdir(), key=lambda p: (not p.is_file(), p.name.lower()))
    except OSError:
        return []

    files: List[Path] = []
    for entry in entries:
        if entry.name.startswith(".") or entry.name in SKIPPED_DIRS:
            continue
        try:
            if entry.is_file():
                files.append(entry)
            elif entry.is_dir():
                files.extend(walk_directory(entry, max_depth, _depth + 1))
        except OSError:
            continue
    return files


def _add(stack: List[str], label: str):
    if label not in stack:
        stack.append(label)


def _first_named(files: Iterable[Path], names: Set[str]) -> Optional[Path]:
    """Shallowest file whose name is in `names`."""
    matches = [f for f in files if f.name in names]
    return min(matches, key=lambda f: len(f.parts)) if matches else None


def _package_json_dependencies(path: Path) -> Set[str]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.debug(f"Could not read {path}: {e}")
        return set()
    if not isinstance(data, dict):
        return set()

    names: Set[str] = set()
    for key in ("dependencies", "devDependencies"):
        deps = data.get(key)
        if isinstance(deps, dict):
            names.update(name.lower() for name in deps)
    return names


def _table(data: Any, *keys: str) -> Dict[str, Any]:
    """Nested TOML table at `keys`, or an empty dict when any level is not a table."""
    for key in keys:
        data = data.get(key) if isinstance(data, dict) else None
    return data if isinstance(data, dict) else {}


def _python_dependencies(files: List[Path]) -> Set[str]:
    """Dependency names declared in requirements.txt and pyproject.toml files."""
    names: Set[str] = set()
    for path in files:
        try:
            if path.name == "requirements.txt":
                for line in path.read_text(encoding="utf-8").splitlines():
                    if line.strip().startswith(("#", "-")):
                        continue
                    match = _REQUIREMENT_NAME.match(line)
                    if match:
                        names.add(match.group(1).lower())
            elif path.name == "pyproject.toml":
                with open(path, "rb") as f:
                    data = tomllib.load(f)
                deps = _table(data, "project").get("dependencies")
                declared = list(deps) if isinstance(deps, list) else []
                poetry_deps = _table(data, "tool", "poetry").get("dependencies")
                if isinstance(poetry_deps, dict):
                    declared.extend(poetry_deps)
                for requirement in declared:
                    match = _REQUIREMENT_NAME.match(str(requirement))
                    if match:
                        names.add(match.group(1).lower())
        except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
            logger.debug(f"Could not read {path}: {e}")
    return names


def detect_tech_stack(root: Path, files: Optional[List[Path]] = None) -> List[str]:
    """Stack labels from manifests, declared dependencies and file extensions."""
    files = walk_directory(root) if files is None else files
    stack: List[str] = []

    package_json = _first_named(files, {"package.json"})
    if package_json is not None:
        _add(stack, "JavaScript/TypeScript")
        deps = _package_json_dependencies(package_json)
        for dependency, label in JS_FRAMEWORKS:
            if dependency in deps:
                _add(stack, label)

    python_manifests = [f for f in files if f.name in PYTHON_MANIFESTS]
    if python_manifests:
        _add(stack, "Python")
        deps = _python_dependencies(python_manifests)
        for dependency, label in PYTHON_FRAMEWORKS:
            if dependency in deps:
                _add(stack, label)

    names = {f.name for f in files}
    for manifests, label in MANIFEST_LANGUAGES:
        if names & manifests:
            _add(stack, label)

    extensions = {f.suffix.lower() for f in files}
    for suffixes, label in EXTENSION_LANGUAGES:
        if extensions & suffixes:
            _add(stack, label)

    return stack


def find_readme(root: Path) -> Optional[Path]:
    """First markdown README within the README scan depth."""
    for path in walk_directory(root, README_SCAN_DEPTH):
        if "readme" in path.name.lower() and path.suffix.lower() == ".md":
            return path
    return None


def infer_ai_needs(root: Path, tech_stack: List[str]) -> List[str]:
    """AI needs implied by README keywords and the detected stack."""
    needs: List[str] = []

    readme = find_readme(root)
    if readme is not None:
        try:
            content = readme.read_text(encoding="utf-8", errors="replace").lower()
        except OSError as e:
            logger.debug(f"Could not read {readme}: {e}")
            content = ""
        for keywords, implied in NEED_CLUSTERS:
            if any(keyword in content for keyword in keywords):
                for need in implied:
                    _add(needs, need)

    if "React" in tech_stack or "Vue" in tech_stack:
        _add(needs, "frontend AI components")
    if "Python" in tech_stack:
        _add(needs, "ML framework integration")

    return needs or list(DEFAULT_NEEDS)
