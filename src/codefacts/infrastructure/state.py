"""Project state: root detection and the persisted namespace."""

from __future__ import annotations

import json
import logging
import subprocess
import time
from dataclasses import asdict, dataclass
from pathlib import Path

from codefacts.errors import ConfigError
from codefacts.infrastructure.db import STATE_DIR

logger = logging.getLogger(__name__)

STATE_FILENAME = "state.json"
TEMPORARY_NAMESPACE = "temporary"


def detect_project_root(start: Path | None = None) -> Path:
    """Return the enclosing git work tree, or *start* (default: cwd) outside git."""
    cwd = start or Path.cwd()
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],  # noqa: S607
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return cwd
    top = result.stdout.strip()
    if result.returncode != 0 or not top:
        return cwd
    return Path(top)


def default_namespace(project_root: Path) -> str:
    """``<directory name>@main``."""
    return f"{project_root.resolve().name}@main"


def state_path(project_root: Path) -> Path:
    return project_root / STATE_DIR / STATE_FILENAME


@dataclass
class ProjectState:
    """Persisted per-project settings written by ``codefacts init``."""

    namespace: str
    created_at: int

    @classmethod
    def create(cls, namespace: str) -> ProjectState:
        return cls(namespace=namespace, created_at=int(time.time()))

    @classmethod
    def load(cls, project_root: Path) -> ProjectState:
        """Load the state file; fall back to the ``temporary`` namespace if absent.

        Raises
        ------
        ConfigError
            If the file exists but is unreadable, not JSON, or not a JSON object
            with an integer ``created_at``.
        """
        path = state_path(project_root)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("State file %s not found, using namespace %r", path, TEMPORARY_NAMESPACE)
            return cls.create(TEMPORARY_NAMESPACE)
        except (OSError, ValueError) as exc:
            msg = f"{path}: cannot read project state: {exc}"
            raise ConfigError(msg) from exc
        if not isinstance(data, dict):
            msg = f"{path}: project state must be a JSON object, got {type(data).__name__}"
            raise ConfigError(msg)
        try:
            created_at = int(data.get("created_at") or 0)
        except (TypeError, ValueError) as exc:
            msg = f"{path}: 'created_at' must be an integer, got {data.get('created_at')!r}"
            raise ConfigError(msg) from exc
        return cls(
            namespace=str(data.get("namespace") or TEMPORARY_NAMESPACE),
            created_at=created_at,
        )

    def save(self, project_root: Path) -> Path:
        path = state_path(project_root)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(self), indent=2) + "\n", encoding="utf-8")
        return path
