import asyncio
import logging
import os
from typing import Callable, List, Optional, Sequence, Union

from gnash.config import DEFAULT_SETTINGS, Settings
from gnash.core import fs
from gnash.core.aggregate import unique_nodes
from gnash.core.detector import DEFAULT_CONFIG, DetectorConfig, detect, syntax_error
from gnash.core.errors import ParseError
from gnash.core.model import DependencyNode, Finding
from gnash.core.syntax import parse


def scan_source(source: Union[str, bytes], file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    """Runs every detection rule over one file. A file that does not parse yields only a SyntaxError."""
    try:
        tree = parse(source)
    except ParseError as e:
        logging.warning(f"Syntax error in {file_id}: {e}")
        return [syntax_error(file_id)]
    return detect(tree, file_id, config)


async def _entry_kind(path: str) -> Optional[str]:
    if await fs.is_dir(path):
        # symlinked directories are not followed
        return None if await fs.is_link(path) else "dir"
    if await fs.is_file(path):
        return "file"
    return None


async def list_source_files(directory: str, extensions: Sequence[str] = (".js",)) -> List[str]:
    """
    Source files of a package, in sorted order.

    node_modules is skipped at every level: installed dependencies are
    scanned as their own graph nodes.
    """
    names = sorted(n for n in await fs.list_dir(directory) if n != "node_modules")
    paths = [os.path.join(directory, n) for n in names]
    kinds = await asyncio.gather(*(_entry_kind(p) for p in paths))

    subdirs = [p for p, kind in zip(paths, kinds) if kind == "dir"]
    listings = await asyncio.gather(*(list_source_files(d, extensions) for d in subdirs))
    nested = dict(zip(subdirs, listings))

    suffixes = tuple(extensions)
    files = []
    for path, kind in zip(paths, kinds):
        if kind == "dir":
            files.extend(nested[path])
        elif kind == "file" and path.endswith(suffixes):
            files.append(path)
    return files


async def _scan_file(path: str, config: DetectorConfig, limit: asyncio.Semaphore) -> List[Finding]:
    async with limit:
        source = await fs.read_bytes(path)
    return scan_source(source, path, config)


async def scan_package(
    node: DependencyNode,
    settings: Settings = DEFAULT_SETTINGS,
    limit: Optional[asyncio.Semaphore] = None,
) -> DependencyNode:
    if node.install_path is None:
        raise ValueError(f"{node.key} has no install path, resolve_paths must run first")

    if limit is None:
        limit = asyncio.Semaphore(settings.max_open_files)

    files = await list_source_files(node.install_path, settings.extensions)
    results = await asyncio.gather(*(_scan_file(f, settings.detector, limit) for f in files))

    node.findings = [finding for file_findings in results for finding in file_findings]
    logging.debug(f"Scanned {node.key}: {len(files)} files, {len(node.findings)} findings")
    return node


async def scan_graph(
    root: DependencyNode,
    settings: Settings = DEFAULT_SETTINGS,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> DependencyNode:
    """Scans every distinct node of the graph exactly once."""
    nodes = unique_nodes(root)
    limit = asyncio.Semaphore(settings.max_open_files)
    logging.info(f"Scanning {len(nodes)} packages...")

    done = 0

    async def scan_one(node):
        nonlocal done
        await scan_package(node, settings, limit)
        done += 1
        if on_progress:
            on_progress(done, len(nodes))

    await asyncio.gather(*(scan_one(n) for n in nodes))
    return root
