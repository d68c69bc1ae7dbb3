from functools import cmp_to_key
from typing import Dict, List

from semver import Version

from gnash.core.model import DependencyNode


def unique_nodes(root: DependencyNode) -> List[DependencyNode]:
    """Every node object reachable from root, once each, in depth-first order."""
    seen = set()
    ordered = []
    stack = [root]
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        ordered.append(node)
        stack.extend(reversed(node.children))
    return ordered


def immediate_count(node: DependencyNode) -> int:
    return len(node.findings or [])


def transitive_count(node: DependencyNode) -> int:
    """
    Findings of node plus those of every distinct descendant.

    Descendants are distinct by name+version: a package reached through
    several paths, or installed twice at the same version, is counted once.
    """
    total = immediate_count(node)
    counted = {node.key}
    stack = list(reversed(node.children))
    while stack:
        dep = stack.pop()
        if dep.key in counted:
            continue
        counted.add(dep.key)
        total += immediate_count(dep)
        stack.extend(reversed(dep.children))
    return total


def compare_versions(a: str, b: str) -> int:
    """Semver ordering, or plain string ordering when either side is not semver."""
    if Version.is_valid(a) and Version.is_valid(b):
        return Version.parse(a).compare(b)
    return (a > b) - (a < b)


def _compare(a: DependencyNode, b: DependencyNode) -> int:
    if a.name != b.name:
        return -1 if a.name < b.name else 1
    return compare_versions(a.version, b.version)


def flatten(root: DependencyNode) -> List[DependencyNode]:
    """Distinct nodes by name+version, sorted by name then version."""
    flat: Dict[str, DependencyNode] = {}
    for node in unique_nodes(root):
        flat.setdefault(node.key, node)
    return sorted(flat.values(), key=cmp_to_key(_compare))


def count_by_category(node: DependencyNode) -> Dict[str, int]:
    """Number of findings per label, ordered by label."""
    counts: Dict[str, int] = {}
    for finding in sorted(node.findings or [], key=lambda f: f.label):
        counts[finding.label] = counts.get(finding.label, 0) + 1
    return counts


def flagged_dependencies(node: DependencyNode) -> List[DependencyNode]:
    """Direct children with immediate or transitive findings."""
    return [dep for dep in node.children if transitive_count(dep) > 0]
