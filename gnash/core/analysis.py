import logging
from typing import Callable, Optional

from gnash.config import DEFAULT_SETTINGS, Settings
from gnash.core.aggregate import flatten, immediate_count
from gnash.core.graph import build_graph, resolve_paths
from gnash.core.model import DependencyNode
from gnash.core.scanner import scan_graph


async def analyze_project(
    root_dir: str,
    settings: Settings = DEFAULT_SETTINGS,
    on_status: Optional[Callable[[str], None]] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> DependencyNode:
    """Builds, resolves and scans the dependency graph of the project at root_dir."""

    def status(msg: str) -> None:
        logging.info(msg)
        if on_status:
            on_status(msg)

    status("Reading package.json and package-lock.json...")
    graph = await build_graph(root_dir)

    status("Resolving install paths...")
    graph = await resolve_paths(graph, root_dir)

    status("Scanning sources...")
    graph = await scan_graph(graph, settings, on_progress=on_progress)

    packages = flatten(graph)
    flagged = sum(1 for p in packages if immediate_count(p) > 0)
    logging.info(f"Scan finished: {len(packages)} packages, {flagged} with detections")
    return graph
