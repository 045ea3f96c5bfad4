"""Graph snapshot persistence.

Saves one KnowledgeGraph per project as ``<projectId>.json`` under the
configured base directory, keeps timestamped backups under ``backups/``
and re-saves every cached graph on a timer.
"""

import hashlib
import logging
import shutil
import threading
import time
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from memograph.config import PersistenceConfig
from memograph.errors import NotFoundError, PersistenceError, ValidationError
from memograph.knowledge.graph import KnowledgeGraph
from memograph.storage import RepeatingTimer, atomic_write_json, read_json

logger = logging.getLogger(__name__)


class GlobalGraphStats(BaseModel):
    """Totals across every persisted project graph."""

    project_count: int
    total_nodes: int
    total_edges: int
    total_size: int


class GraphPersistenceManager:
    """Loads, caches and saves project graphs.

    Args:
        config: Persistence settings. Defaults to PersistenceConfig().
    """

    def __init__(self, config: PersistenceConfig | None = None) -> None:
        self.config = config or PersistenceConfig()
        self._graphs: dict[str, KnowledgeGraph] = {}
        self._timers: dict[str, RepeatingTimer] = {}
        self._lock = threading.RLock()
        self.config.base_dir.mkdir(parents=True, exist_ok=True)

    @property
    def base_dir(self) -> Path:
        return self.config.base_dir

    @property
    def backup_dir(self) -> Path:
        return self.config.base_dir / "backups"

    @staticmethod
    def generate_project_id(project_path: str | Path) -> str:
        """Derive a stable, filename-safe id from a project path.

        Args:
            project_path: Project root path.

        Returns:
            First 16 hex characters of the path's SHA-256 digest.
        """
        return hashlib.sha256(str(project_path).encode("utf-8")).hexdigest()[:16]

    def graph_path(self, project_id: str) -> Path:
        return self.config.base_dir / f"{project_id}.json"

    # ------------------------------------------------------------------
    # Save / load
    # ------------------------------------------------------------------

    def save(self, project_id: str, graph: KnowledgeGraph) -> None:
        """Write a snapshot atomically, backing up the previous one.

        Args:
            project_id: Project the graph belongs to.
            graph: Graph to persist.

        Raises:
            PersistenceError: If the backup, write or pruning fails.
        """
        graph_path = self.graph_path(project_id)
        data = graph.to_json()

        with self._lock:
            if graph_path.exists():
                self._create_backup(project_id)
            atomic_write_json(graph_path, data, indent=2)
            self._prune_backups(project_id)

        logger.info(
            "Saved graph %s (%d nodes, %d edges)",
            project_id,
            len(data["nodes"]),
            len(data["edges"]),
        )

    def load(self, project_id: str) -> KnowledgeGraph | None:
        """Load a project graph from disk and cache it.

        Returns:
            The graph, or None when no snapshot exists yet.

        Raises:
            PersistenceError: If a snapshot exists but is unreadable or corrupt.
        """
        graph = self.read(project_id)
        if graph is None:
            return None

        with self._lock:
            self._graphs[project_id] = graph
            self._schedule_auto_save(project_id)

        stats = graph.get_stats()
        logger.info(
            "Loaded graph %s with %d nodes and %d edges",
            project_id,
            stats.node_count,
            stats.edge_count,
        )
        return graph

    def get_or_create(self, project_id: str) -> KnowledgeGraph:
        """Return the cached graph, else the persisted one, else a new one.

        A new graph is saved immediately so an on-disk baseline exists.
        """
        with self._lock:
            cached = self._graphs.get(project_id)
            if cached is not None:
                return cached

            loaded = self.load(project_id)
            if loaded is not None:
                return loaded

            graph = KnowledgeGraph(project_id)
            self._graphs[project_id] = graph
            self._schedule_auto_save(project_id)
            self.save(project_id, graph)
            logger.info("Created new graph for project %s", project_id)
            return graph

    def get_cached(self, project_id: str) -> KnowledgeGraph | None:
        with self._lock:
            return self._graphs.get(project_id)

    # ------------------------------------------------------------------
    # Project management
    # ------------------------------------------------------------------

    def delete(self, project_id: str) -> None:
        """Forget a project: stop its timer and remove snapshot and backups."""
        with self._lock:
            timer = self._timers.pop(project_id, None)
            self._graphs.pop(project_id, None)
        # joined outside the lock: a pending tick needs it to finish
        if timer is not None:
            timer.cancel()

        with self._lock:
            try:
                self.graph_path(project_id).unlink(missing_ok=True)
                for backup in self.list_backups(project_id):
                    backup.unlink(missing_ok=True)
            except OSError as exc:
                raise PersistenceError(
                    f"Failed to delete graph {project_id} ({exc})"
                ) from exc
        logger.info("Deleted graph %s", project_id)

    def list_projects(self) -> list[str]:
        """Return ids of all projects with a snapshot on disk."""
        if not self.config.base_dir.is_dir():
            return []
        return sorted(p.stem for p in self.config.base_dir.glob("*.json"))

    def list_backups(self, project_id: str) -> list[Path]:
        """Return a project's backups, newest first."""
        if not self.backup_dir.is_dir():
            return []
        stamped: list[tuple[int, Path]] = []
        prefix = f"{project_id}-"
        for path in self.backup_dir.glob(f"{project_id}-*.json"):
            suffix = path.stem[len(prefix):]
            if suffix.isdigit():
                stamped.append((int(suffix), path))
        stamped.sort(key=lambda item: item[0], reverse=True)
        return [path for _, path in stamped]

    def get_global_stats(self) -> GlobalGraphStats:
        """Sum node, edge and byte counts over every persisted project.

        Snapshots that cannot be read are logged and skipped.
        """
        projects = self.list_projects()
        total_nodes = total_edges = total_size = 0
        for project_id in projects:
            try:
                total_size += self.graph_path(project_id).stat().st_size
                graph = self.get_cached(project_id) or self.read(project_id)
                if graph is not None:
                    stats = graph.get_stats()
                    total_nodes += stats.node_count
                    total_edges += stats.edge_count
            except (OSError, PersistenceError) as e:
                logger.error("Failed to get stats for project %s: %s", project_id, e)
        return GlobalGraphStats(
            project_count=len(projects),
            total_nodes=total_nodes,
            total_edges=total_edges,
            total_size=total_size,
        )

    def export(self, project_id: str, export_path: Path) -> None:
        """Write a project's graph to a portable JSON file.

        Raises:
            NotFoundError: If the project has no graph.
        """
        graph = self.get_cached(project_id) or self.read(project_id)
        if graph is None:
            raise NotFoundError("Graph", project_id)
        atomic_write_json(export_path, graph.to_json(), indent=2)

    def import_graph(self, project_id: str, import_path: Path) -> KnowledgeGraph:
        """Load a graph from a portable JSON file and store it under project_id.

        Raises:
            PersistenceError: If the file is missing or corrupt.
        """
        data = read_json(import_path)
        if data is None:
            raise PersistenceError("Import file not found", import_path)
        graph = self._graph_from_data(data, import_path)
        graph.project_id = project_id

        with self._lock:
            self.save(project_id, graph)
            self._graphs[project_id] = graph
            self._schedule_auto_save(project_id)
        return graph

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def cleanup(self) -> None:
        """Stop all timers, then flush every cached graph and clear the cache."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

        with self._lock:
            failures: list[str] = []
            for project_id, graph in list(self._graphs.items()):
                try:
                    self.save(project_id, graph)
                except PersistenceError as e:
                    logger.error("Final save failed for project %s: %s", project_id, e)
                    failures.append(project_id)
            self._graphs.clear()

        if failures:
            raise PersistenceError(
                f"Failed to flush graphs for projects: {', '.join(failures)}"
            )

    def __enter__(self) -> "GraphPersistenceManager":
        return self

    def __exit__(self, *args: Any) -> None:
        self.cleanup()

    def read(self, project_id: str) -> KnowledgeGraph | None:
        """Read a snapshot without caching it or starting auto-save.

        Raises:
            PersistenceError: If the snapshot is unreadable or corrupt.
        """
        path = self.graph_path(project_id)
        data = read_json(path)
        if data is None:
            return None
        return self._graph_from_data(data, path)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _graph_from_data(data: Any, path: Path) -> KnowledgeGraph:
        if not isinstance(data, dict):
            raise PersistenceError("Snapshot is not a JSON object", path)
        try:
            return KnowledgeGraph.from_json(data)
        except ValidationError as exc:
            raise PersistenceError(f"Corrupt snapshot ({exc})", path) from exc

    def _schedule_auto_save(self, project_id: str) -> None:
        if not self.config.auto_save:
            return
        existing = self._timers.pop(project_id, None)
        if existing is not None:
            # callers hold the lock; joining here would wait on a blocked tick
            existing.cancel(wait=False)

        def _auto_save() -> None:
            graph = self.get_cached(project_id)
            if graph is not None:
                self.save(project_id, graph)

        timer = RepeatingTimer(
            self.config.save_interval, _auto_save, name=f"graph-autosave-{project_id}"
        )
        self._timers[project_id] = timer
        timer.start()

    def _create_backup(self, project_id: str) -> Path:
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        timestamp = int(time.time() * 1000)
        backup_path = self.backup_dir / f"{project_id}-{timestamp}.json"
        while backup_path.exists():
            timestamp += 1
            backup_path = self.backup_dir / f"{project_id}-{timestamp}.json"
        try:
            shutil.copy2(self.graph_path(project_id), backup_path)
        except OSError as exc:
            raise PersistenceError(f"Failed to back up graph ({exc})", backup_path) from exc
        return backup_path

    def _prune_backups(self, project_id: str) -> None:
        stale = self.list_backups(project_id)[self.config.max_backups:]
        for path in stale:
            try:
                path.unlink()
            except OSError as exc:
                raise PersistenceError(f"Failed to prune backup ({exc})", path) from exc
        if stale:
            logger.debug("Pruned %d backups for %s", len(stale), project_id)
