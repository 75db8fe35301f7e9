"""Project context analysis.

Scans a project directory for its technology stack (manifests, lockfiles,
marker files) and caches the resulting ``ProjectContext`` per path.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import tomllib
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from caprec.errors import ContextScanError
from caprec.recommendations.cache import TTLCache
from caprec.recommendations.schemas import ProjectContext, ProjectContextCacheEntry

logger = logging.getLogger(__name__)

ProjectScanner = Callable[[str], ProjectContext]

# ---------------------------------------------------------------------------
# Detection tables
# ---------------------------------------------------------------------------

# npm dependency -> (technologies, frameworks)
_NPM_DEPENDENCIES: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "next": (("react",), ("nextjs",)),
    "nuxt": (("vue",), ("nuxt",)),
    "@remix-run/react": (("react",), ("remix",)),
    "astro": ((), ("astro",)),
    "react": (("react",), ()),
    "vue": (("vue",), ()),
    "svelte": (("svelte",), ()),
    "@angular/core": (("angular",), ()),
    "express": (("express",), ()),
    "fastify": (("fastify",), ()),
    "@nestjs/core": (("nestjs",), ()),
    "hono": (("hono",), ()),
    "prisma": (("prisma",), ()),
    "@prisma/client": (("prisma",), ()),
    "drizzle-orm": (("drizzle",), ()),
    "pg": (("postgresql",), ()),
    "mysql2": (("mysql",), ()),
    "mongodb": (("mongodb",), ()),
    "jest": (("jest",), ()),
    "@jest/core": (("jest",), ()),
    "vitest": (("vitest",), ()),
    "playwright": (("playwright",), ()),
    "@playwright/test": (("playwright",), ()),
    "tailwindcss": (("tailwind",), ()),
    "styled-components": (("styled-components",), ()),
    "@emotion/react": (("emotion",), ()),
    "zustand": (("zustand",), ()),
    "@reduxjs/toolkit": (("redux",), ()),
    "@tanstack/react-query": (("tanstack-query",), ()),
}

_NPM_TEST_RUNNERS = {"jest", "@jest/core", "vitest", "playwright", "@playwright/test"}

# Python distribution -> (technologies, frameworks)
_PYTHON_DEPENDENCIES: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
    "django": ((), ("django",)),
    "flask": ((), ("flask",)),
    "fastapi": ((), ("fastapi",)),
    "pytest": (("pytest",), ()),
    "sqlalchemy": (("sqlalchemy",), ()),
    "pydantic": (("pydantic",), ()),
    "psycopg2": (("postgresql",), ()),
    "psycopg": (("postgresql",), ()),
    "redis": (("redis",), ()),
}

# Checked in order; the first lockfile found names the package manager.
_LOCKFILES: list[tuple[str, str]] = [
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
    ("package-lock.json", "npm"),
    ("poetry.lock", "poetry"),
    ("uv.lock", "uv"),
    ("requirements.txt", "pip"),
]

_MARKER_FILES = (
    "package.json",
    "pyproject.toml",
    "requirements.txt",
    "tsconfig.json",
    "Dockerfile",
    "docker-compose.yml",
    "docker-compose.yaml",
    ".github",
)

_TEST_DIRS = ("__tests__", "tests", "test", "spec")

_REQUIREMENT_NAME_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------


def _requirement_name(spec: str) -> str | None:
    match = _REQUIREMENT_NAME_RE.match(spec)
    if not match:
        return None
    return match.group(1).lower().replace("_", "-")


def _read_package_json(root: Path) -> tuple[str | None, list[str]]:
    path = root / "package.json"
    if not path.is_file():
        return None, []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable {path}: {e}")
        return None, []
    if not isinstance(data, dict):
        logger.warning(f"Ignoring {path}: top level is not an object")
        return None, []
    deps: dict[str, str] = {}
    for section in ("dependencies", "devDependencies"):
        value = data.get(section)
        if isinstance(value, dict):
            deps.update(value)
    name = data.get("name") if isinstance(data.get("name"), str) else None
    return name, list(deps)


def _string_list(value: Any, source: str) -> list[str]:
    """*value* if it is a list of strings, else ``[]`` with a warning."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        logger.warning(f"Ignoring {source}: expected a list of strings")
        return []
    return value


def _pyproject_requirements(data: dict[str, Any], pyproject: Path) -> tuple[str | None, list[str]]:
    project = data.get("project", {})
    if not isinstance(project, dict):
        logger.warning(f"Ignoring {pyproject}: [project] is not a table")
        return None, []

    name = project["name"] if isinstance(project.get("name"), str) else None
    requirements = _string_list(project.get("dependencies"), f"{pyproject} dependencies")

    extras = project.get("optional-dependencies")
    if isinstance(extras, dict):
        for extra, value in extras.items():
            requirements += _string_list(value, f"{pyproject} optional-dependencies.{extra}")
    elif extras is not None:
        logger.warning(f"Ignoring {pyproject} optional-dependencies: expected a table")
    return name, requirements


def _read_python_requirements(root: Path) -> tuple[str | None, list[str]]:
    name: str | None = None
    requirements: list[str] = []

    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable {pyproject}: {e}")
        else:
            name, requirements = _pyproject_requirements(data, pyproject)

    req_file = root / "requirements.txt"
    if req_file.is_file():
        try:
            lines = req_file.read_text(encoding="utf-8").splitlines()
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable {req_file}: {e}")
            lines = []
        for line in lines:
            line = line.strip()
            if line and not line.startswith(("#", "-")):
                requirements.append(line)

    names = [n for n in (_requirement_name(r) for r in requirements) if n]
    return name, list(dict.fromkeys(names))


def scan_project(project_path: str) -> ProjectContext:
    """Build a ``ProjectContext`` by inspecting *project_path*.

    Raises:
        ContextScanError: the path is missing or not a directory, cannot
            be listed, or holds a manifest the readers cannot make sense of.
            Malformed manifests are normally logged and skipped.
    """
    root = Path(project_path).expanduser()
    try:
        if not root.exists():
            raise ContextScanError(project_path, "path does not exist")
        if not root.is_dir():
            raise ContextScanError(project_path, "not a directory")
        entries = {p.name for p in root.iterdir()}
    except PermissionError as e:
        raise ContextScanError(project_path, f"permission denied ({e})") from e
    except OSError as e:
        raise ContextScanError(project_path, str(e)) from e

    try:
        npm_name, npm_deps = _read_package_json(root)
        py_name, py_deps = _read_python_requirements(root)
    except (TypeError, AttributeError, ValueError) as e:
        raise ContextScanError(project_path, f"unparseable manifest ({e})") from e

    technologies: dict[str, None] = {}
    frameworks: dict[str, None] = {}
    has_tests = False
    has_typescript = False

    for dep in npm_deps:
        dep_lower = dep.lower()
        if dep_lower.startswith("@next/"):
            dep_lower = "next"
        techs, fws = _NPM_DEPENDENCIES.get(dep_lower, ((), ()))
        technologies.update(dict.fromkeys(techs))
        frameworks.update(dict.fromkeys(fws))
        if dep_lower in _NPM_TEST_RUNNERS:
            has_tests = True
        if dep_lower == "typescript":
            has_typescript = True

    if "pyproject.toml" in entries or "requirements.txt" in entries:
        technologies["python"] = None
    for dep in py_deps:
        techs, fws = _PYTHON_DEPENDENCIES.get(dep, ((), ()))
        technologies.update(dict.fromkeys(techs))
        frameworks.update(dict.fromkeys(fws))
        if dep == "pytest":
            has_tests = True

    if "tsconfig.json" in entries:
        has_typescript = True
        technologies["typescript"] = None

    has_docker = bool({"Dockerfile", "docker-compose.yml", "docker-compose.yaml"} & entries)
    if has_docker:
        technologies["docker"] = None

    if not has_tests:
        has_tests = any(d in entries and (root / d).is_dir() for d in _TEST_DIRS)

    package_manager = next((pm for lock, pm in _LOCKFILES if lock in entries), None)
    if package_manager is None and npm_deps:
        package_manager = "npm"

    return ProjectContext(
        path=str(root),
        name=npm_name or py_name,
        package_manager=package_manager,
        technologies=tuple(technologies),
        frameworks=tuple(frameworks),
        package_dependencies=tuple(dict.fromkeys([*npm_deps, *py_deps])),
        file_patterns=tuple(m for m in _MARKER_FILES if m in entries),
        has_tests=has_tests,
        has_docker=has_docker,
        has_typescript=has_typescript,
        computed_at=datetime.now(UTC),
    )


# ---------------------------------------------------------------------------
# Cached analyzer
# ---------------------------------------------------------------------------


class ProjectContextAnalyzer:
    """Project scanner fronted by a per-path TTL cache.

    Two concurrent misses for the same path may both scan; the scan is
    read-only, and the later insert wins.
    """

    def __init__(
        self,
        cache: TTLCache[str, ProjectContextCacheEntry],
        scanner: ProjectScanner = scan_project,
    ) -> None:
        self._cache = cache
        self._scanner = scanner

    @property
    def cache(self) -> TTLCache[str, ProjectContextCacheEntry]:
        return self._cache

    async def analyze(self, project_path: str, ttl_ms: int | None = None) -> ProjectContext:
        """Return the context for *project_path*, scanning on a cache miss.

        Raises:
            ContextScanError: the scan failed.
        """
        cached = self._cache.get(project_path, ttl_ms)
        if cached is not None:
            return cached.context

        context = await asyncio.to_thread(self._scanner, project_path)
        self._cache.set(
            project_path,
            ProjectContextCacheEntry(context=context, timestamp=self._cache.now()),
        )
        logger.debug(
            f"Scanned project {project_path}: "
            f"{len(context.technologies)} technologies, {len(context.frameworks)} frameworks"
        )
        return context
