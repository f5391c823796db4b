"""Infrastructure: index database, project state, configuration and stats.

``codefacts.infrastructure.config`` is not re-exported: it depends on the
catalog, indexing and context modules. Import it directly.
"""

from codefacts.infrastructure.db import SCHEMA_VERSION, db_path_for, open_db
from codefacts.infrastructure.state import ProjectState, detect_project_root
from codefacts.infrastructure.stats import IndexStats, collect_stats

__all__ = [
    "SCHEMA_VERSION",
    "IndexStats",
    "ProjectState",
    "collect_stats",
    "db_path_for",
    "detect_project_root",
    "open_db",
]
