import asyncio
import json
import logging
import os
from typing import Any, Awaitable, Callable, Dict, List

from gnash.core import fs
from gnash.core.errors import (
    GraphInconsistency,
    InvalidManifest,
    LockfileNotFound,
    ManifestNotFound,
    ModuleNotFound,
    PathResolutionFailure,
)
from gnash.core.model import DependencyNode

MANIFEST = "package.json"
LOCKFILE = "package-lock.json"

ReadFile = Callable[[str], Awaitable[str]]
Scope = Dict[str, DependencyNode]


async def _read_json(path: str, read_file: ReadFile, missing: type) -> Dict[str, Any]:
    try:
        text = await read_file(path)
    except FileNotFoundError:
        raise missing(path)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidManifest(path, str(e))

    if not isinstance(data, dict):
        raise InvalidManifest(path, "expected a JSON object")
    return data


def fold_packages(packages: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Rebuilds the nested `dependencies` tree of older lockfiles from the flat
    `packages` map of lockfileVersion 3.

    "node_modules/a/node_modules/b" becomes a["dependencies"]["b"], and each
    entry's dependencies and optionalDependencies become its `requires`.
    The root entry, workspace folders and links are skipped.
    """
    prefix = "node_modules/"
    keys = [k for k in packages if k.startswith(prefix)]
    # parents before their nested copies
    keys.sort(key=lambda k: k.count("/node_modules/"))

    tree: Dict[str, Dict[str, Any]] = {}
    for key in keys:
        entry = packages[key]
        if entry.get("link"):
            logging.debug(f"Skipping linked package {key}")
            continue

        names = key[len(prefix):].split("/node_modules/")
        level = tree
        for name in names[:-1]:
            parent = level.get(name)
            if parent is None:
                level = None
                break
            level = parent.setdefault("dependencies", {})
        if level is None:
            logging.debug(f"Skipping {key}: parent package is not in the lockfile")
            continue

        requires = {}
        requires.update(entry.get("dependencies", {}))
        requires.update(entry.get("optionalDependencies", {}))

        folded: Dict[str, Any] = {"version": entry.get("version", "")}
        if requires:
            folded["requires"] = requires
        level[names[-1]] = folded

    return tree


def _lookup(name: str, scopes: List[Scope], required_by: str) -> DependencyNode:
    # innermost scope wins
    for scope in reversed(scopes):
        if name in scope:
            return scope[name]
    raise ModuleNotFound(name, required_by)


def _link(name: str, entry: Dict[str, Any], scopes: List[Scope]) -> DependencyNode:
    current = _lookup(name, scopes, name)

    nested = entry.get("dependencies") or {}
    scopes.append({
        dep_name: DependencyNode(dep_name, dep_entry.get("version", ""))
        for dep_name, dep_entry in nested.items()
    })

    for required in entry.get("requires") or {}:
        current.add_child(_lookup(required, scopes, current.name))

    for dep_name, dep_entry in nested.items():
        _link(dep_name, dep_entry, scopes)

    scopes.pop()
    return current


async def build_graph(root_dir: str, read_file: ReadFile = fs.read_text) -> DependencyNode:
    """
    Builds the dependency graph of the project at root_dir from its
    package.json and package-lock.json.

    Nodes carry only name and version; a package required by several others
    is a single shared node.
    """
    manifest = await _read_json(os.path.join(root_dir, MANIFEST), read_file, ManifestNotFound)
    lock = await _read_json(os.path.join(root_dir, LOCKFILE), read_file, LockfileNotFound)

    project_name = manifest.get("name") or os.path.basename(os.path.abspath(root_dir))
    root = DependencyNode(project_name, manifest.get("version", ""))

    declared = {}
    declared.update(manifest.get("dependencies") or {})
    declared.update(manifest.get("devDependencies") or {})

    hoisted = lock.get("dependencies")
    if hoisted is None and "packages" in lock:
        logging.debug("Lockfile has no dependency tree, folding 'packages'...")
        hoisted = fold_packages(lock["packages"])
    hoisted = hoisted or {}

    # Hoisted dependencies are reachable by name from any package in the project
    root_scope: Scope = {project_name: root}
    for name, entry in hoisted.items():
        root_scope[name] = DependencyNode(name, entry.get("version", ""))

    for name, entry in hoisted.items():
        if entry.get("dependencies") or entry.get("requires"):
            _link(name, entry, [root_scope])

    for name in declared:
        node = root_scope.get(name)
        if node is None or node is root:
            raise GraphInconsistency(name)
        root.add_child(node)

    logging.debug(f"Graph built for {project_name}: {len(root.children)} direct, {len(hoisted)} hoisted")
    return root


async def _enclosing_package(path: str, name: str, start: str) -> str:
    """Nearest proper ancestor of path that holds a package.json."""
    current = path
    while True:
        parent = os.path.dirname(current)
        if parent == current:
            raise PathResolutionFailure(name, start)
        current = parent
        if await fs.exists(os.path.join(current, MANIFEST)):
            return current


async def find_path(name: str, parent_path: str) -> str:
    """
    Install directory of `name` as seen from the package at parent_path.

    Probes parent_path/node_modules/name, then repeats the probe from each
    enclosing package directory up to the filesystem root.
    """
    current = parent_path
    while True:
        candidate = os.path.join(current, "node_modules", name)
        if await fs.is_dir(candidate):
            return candidate
        current = await _enclosing_package(current, name, parent_path)


async def resolve_paths(root: DependencyNode, root_path: str) -> DependencyNode:
    """
    Returns a copy of the graph where every node has its install_path.

    Nodes resolving to the same directory become one shared node. A node is
    registered before its children are resolved, so dependency cycles end at
    the already registered node.
    """
    root_path = os.path.abspath(root_path)
    resolved: Dict[str, DependencyNode] = {}

    new_root = DependencyNode(root.name, root.version, install_path=root_path)
    resolved[root_path] = new_root

    async def resolve(node: DependencyNode, parent_path: str) -> DependencyNode:
        path = await find_path(node.name, parent_path)
        if path in resolved:
            return resolved[path]

        updated = DependencyNode(node.name, node.version, install_path=path)
        resolved[path] = updated

        children = await asyncio.gather(*(resolve(child, path) for child in node.children))
        for child in children:
            updated.add_child(child)
        return updated

    children = await asyncio.gather(*(resolve(child, root_path) for child in root.children))
    for child in children:
        new_root.add_child(child)

    logging.debug(f"Resolved {len(resolved)} install paths under {root_path}")
    return new_root
