import os
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.text import Text

from gnash.core.aggregate import (
    count_by_category,
    flagged_dependencies,
    flatten,
    immediate_count,
    transitive_count,
)
from gnash.core.model import DependencyNode, Finding


def _display_path(finding: Finding, node: DependencyNode) -> str:
    if node.install_path:
        return os.path.relpath(finding.source_file, node.install_path)
    return finding.source_file


def _counts(node: DependencyNode, indent: str = "") -> Text:
    immediate = immediate_count(node)
    transitive = transitive_count(node)
    if immediate:
        style = "bold red"
    elif transitive:
        style = "yellow"
    else:
        style = "green"

    line = Text(indent)
    line.append(f"{node.name} {node.version}", style=style)
    line.append(" Detections: ")
    line.append(str(immediate), style="red" if immediate else "dim")
    line.append(" Immediate ")
    line.append(str(transitive), style="yellow" if transitive else "dim")
    line.append(" Transitive")
    return line


def render_report(root: DependencyNode, verbose: bool = False) -> List[Text]:
    """
    One block per distinct package, sorted by name and version.

    Verbose mode lists every finding with its location; otherwise findings
    are squashed into counts per pattern. Only dependencies with detections
    are listed under a package.
    """
    lines: List[Text] = []
    for pkg in flatten(root):
        lines.append(_counts(pkg))
        findings = pkg.findings or []

        if verbose:
            for finding in findings:
                line = Text("     ")
                line.append(finding.label, style="cyan")
                line.append(f" found in {_display_path(finding, pkg)} at {finding.location}")
                lines.append(line)
        elif findings:
            lines.append(Text("  Detected Patterns:"))
            for label, count in count_by_category(pkg).items():
                if count > 1:
                    lines.append(Text(f"     {count} instances of '{label}'"))
                else:
                    lines.append(Text(f"     {label}"))

        deps = flagged_dependencies(pkg)
        if deps:
            lines.append(Text("  Dependencies:"))
            for dep in deps:
                lines.append(_counts(dep, indent="     "))
    return lines


def print_report(root: DependencyNode, verbose: bool = False, console: Optional[Console] = None) -> None:
    console = console or Console()
    for line in render_report(root, verbose):
        console.print(line, highlight=False, soft_wrap=True)


def report_dict(root: DependencyNode) -> Dict[str, Any]:
    return {
        "project": root.name,
        "version": root.version,
        "packages": [
            {
                "name": pkg.name,
                "version": pkg.version,
                "path": pkg.install_path,
                "immediate": immediate_count(pkg),
                "transitive": transitive_count(pkg),
                "findings": [f.to_dict() for f in pkg.findings or []],
                "dependencies": [dep.key for dep in pkg.children],
            }
            for pkg in flatten(root)
        ],
    }
