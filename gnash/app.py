import logging
from typing import Dict, Optional

from rich.markup import escape
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical, VerticalScroll
from textual.css.query import NoMatches
from textual.screen import ModalScreen
from textual.widgets import Button, Footer, Header, Label, LoadingIndicator, Markdown, Tree
from textual.widgets.tree import TreeNode

from gnash.__version__ import __version__
from gnash.config import DEFAULT_SETTINGS, Settings
from gnash.core.aggregate import count_by_category, flatten, immediate_count, transitive_count
from gnash.core.analysis import analyze_project
from gnash.core.model import DependencyNode


def findings_markdown(node: DependencyNode) -> str:
    findings = node.findings or []
    if not findings:
        return "No detections in this package."

    md_output = ["## Summary\n"]
    for label, count in count_by_category(node).items():
        md_output.append(f"- **{label}**: {count}")

    md_output.append("\n## Detections\n")
    for finding in findings:
        md_output.append(f"- `{finding.category.value}` {finding.label}")
        md_output.append(f"  - `{finding.source_file}` at {finding.location}")

    return "\n".join(md_output)


def node_label(node: DependencyNode, immediate: int, transitive: int, cycle: bool = False) -> str:
    safe_name = escape(node.name)
    safe_ver = escape(node.version)

    child_count = len(node.children)
    count_suffix = f" [dim]↳[/] {child_count}" if child_count > 0 and not cycle else ""
    cycle_suffix = " [dim]⟳[/]" if cycle else ""

    if immediate:
        return f"[bold red](!) {safe_name}[/] [dim]{safe_ver}[/] [red]({immediate} immediate / {transitive} transitive)[/]{cycle_suffix}{count_suffix}"
    if transitive:
        return f"[yellow](~) {safe_name}[/] [dim]{safe_ver}[/] [yellow]({transitive} transitive)[/]{cycle_suffix}{count_suffix}"
    return f"[green](•) {safe_name} [dim]{safe_ver}[/]{cycle_suffix}{count_suffix}"


class FindingsScreen(ModalScreen):
    """Modal with every detection of one package."""

    DEFAULT_CSS = """
    FindingsScreen {
        align: center middle;
        background: rgba(0, 0, 0, 0.8);
    }
    #dialog {
        padding: 0 1;
        width: 85%;
        height: 85%;
        border: heavy $error;
        background: $surface;
        layout: vertical;
    }
    #title {
        text-align: center;
        text-style: bold;
        background: $error;
        color: white;
        width: 100%;
        padding: 1;
    }
    #content-scroll {
        height: 1fr;
        margin: 1 0;
        overflow-y: auto;
        scrollbar-gutter: stable;
    }
    #close-btn {
        width: 100%;
        dock: bottom;
    }
    """

    def __init__(self, node: DependencyNode) -> None:
        super().__init__()
        self.node = node

    def compose(self) -> ComposeResult:
        yield Vertical(
            Label(f"[!] {escape(self.node.name)} {escape(self.node.version)}", id="title"),
            VerticalScroll(
                Markdown(findings_markdown(self.node)),
                id="content-scroll"
            ),
            Button("Close (Esc)", variant="error", id="close-btn"),
            id="dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss()

    def key_escape(self) -> None:
        self.dismiss()


class GnashApp(App):
    TITLE = "gnash"
    SUB_TITLE = f"v{__version__}"

    DEFAULT_CSS = """
    Screen { layout: vertical; }

    #info-bar {
        height: 3;
        dock: top;
        background: $surface;
        border-bottom: solid $primary;
        align: left middle;
        padding: 0 1;
    }

    .info-label {
        width: auto;
        height: 1;
        padding: 0 2;
        color: $text;
    }

    #tree-container {
        height: 1fr;
        border: none;
        margin: 0 1;
    }
    Tree { padding: 1; background: $surface; }

    #loading-container { height: 100%; align: center middle; }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
        Binding("l", "expand_node", "Expand"),
        Binding("h", "collapse_node", "Collapse"),
        Binding("f", "toggle_filter", "Flagged Only"),
    ]

    show_only_flagged: bool = False
    total_pkgs: int = 0
    flagged_pkgs: int = 0

    def __init__(self, project_dir: str, settings: Settings = DEFAULT_SETTINGS) -> None:
        super().__init__()
        self.project_dir = project_dir
        self.settings = settings
        self.graph: Optional[DependencyNode] = None
        self._transitive: Dict[int, int] = {}

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        with Horizontal(id="info-bar"):
            yield Label(f"[b]Project:[/b] [cyan]{escape(self.project_dir)}[/]", id="lbl-project", classes="info-label")
            yield Label(f"[b]Packages:[/b] [blue]{self.total_pkgs}[/]", id="lbl-total", classes="info-label")
            yield Label(f"[b]Flagged:[/b] [red]{self.flagged_pkgs}[/]", id="lbl-flagged", classes="info-label")
            yield Label("[b]Clean:[/b] [green]0[/]", id="lbl-clean", classes="info-label")

        with Container(id="main-area"):
            with Container(id="loading-container"):
                yield LoadingIndicator()
                yield Label("Initializing gnash...", id="status-label")

            with Container(id="tree-container"):
                yield Tree("Root", id="dep-tree")

        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#tree-container").display = False
        self.scan_project()

    # --- ACTIONS ---

    def action_cursor_down(self) -> None:
        self.query_one("#dep-tree").action_cursor_down()

    def action_cursor_up(self) -> None:
        self.query_one("#dep-tree").action_cursor_up()

    def action_expand_node(self) -> None:
        tree = self.query_one("#dep-tree")
        if tree.cursor_node:
            tree.cursor_node.expand()

    def action_collapse_node(self) -> None:
        tree = self.query_one("#dep-tree")
        node = tree.cursor_node
        if node:
            if node.is_expanded:
                node.collapse()
            elif node.parent:
                tree.select_node(node.parent)
                node.parent.collapse()

    def on_tree_node_selected(self, event: Tree.NodeSelected) -> None:
        node_data = event.node.data
        if node_data and node_data.findings:
            self.push_screen(FindingsScreen(node_data))
        else:
            self.notify("No detections in this package.", severity="information")

    def on_tree_node_expanded(self, event: Tree.NodeExpanded) -> None:
        if event.node.data is not None and not event.node.children:
            self.add_children(event.node)

    def action_toggle_filter(self) -> None:
        self.show_only_flagged = not self.show_only_flagged

        status = "enabled" if self.show_only_flagged else "disabled"
        severity = "warning" if self.show_only_flagged else "information"
        msg = "Showing packages with detections only." if self.show_only_flagged else "Showing all packages."

        self.notify(f"Filter {status}: {msg}", severity=severity)

        if self.graph is not None:
            self.render_tree(self.graph)

    # --- LOGIC ---

    def transitive(self, node: DependencyNode) -> int:
        if id(node) not in self._transitive:
            self._transitive[id(node)] = transitive_count(node)
        return self._transitive[id(node)]

    def update_progress(self, current: int, total: int) -> None:
        self.update_status(f"Scanning sources... (package {current} of {total})")

    def update_status(self, msg: str) -> None:
        try:
            self.query_one("#status-label", Label).update(msg)
        except NoMatches:
            logging.debug(f"Status label gone, dropping: {msg}")

    def update_dashboard_ui(self) -> None:
        clean_count = self.total_pkgs - self.flagged_pkgs
        self.query_one("#lbl-total", Label).update(f"[b]Packages:[/b] [blue]{self.total_pkgs}[/]")
        self.query_one("#lbl-flagged", Label).update(f"[b]Flagged:[/b] [red]{self.flagged_pkgs}[/]")
        self.query_one("#lbl-clean", Label).update(f"[b]Clean:[/b] [green]{clean_count}[/]")

    def show_error(self, message: str) -> None:
        self.query_one("#status-label", Label).update(f"[bold red]Fatal Error:[/]\n{escape(message)}")
        self.query_one(LoadingIndicator).display = False

    @work(thread=False)
    async def scan_project(self) -> None:
        try:
            logging.info("Worker started.")
            graph = await analyze_project(
                self.project_dir,
                self.settings,
                on_status=self.update_status,
                on_progress=self.update_progress,
            )

            packages = flatten(graph)
            self.total_pkgs = len(packages)
            self.flagged_pkgs = sum(1 for p in packages if immediate_count(p) > 0)
            self.graph = graph

            self.update_status("Rendering tree...")
            self.update_dashboard_ui()
            self.render_tree(graph)

        except Exception as e:
            logging.exception("Fatal error in worker:")
            self.show_error(str(e))

    def _is_cycle(self, tree_node: TreeNode, data: DependencyNode) -> bool:
        current = tree_node
        while current is not None:
            if current.data is data:
                return True
            current = current.parent
        return False

    def add_children(self, tree_node: TreeNode) -> None:
        for child in tree_node.data.children:
            transitive = self.transitive(child)
            if self.show_only_flagged and transitive == 0:
                continue

            cycle = self._is_cycle(tree_node, child)
            label = node_label(child, immediate_count(child), transitive, cycle=cycle)
            tree_node.add(label, data=child, allow_expand=bool(child.children) and not cycle)

    def render_tree(self, root_node: DependencyNode) -> None:
        tree = self.query_one("#dep-tree", Tree)
        tree.clear()
        tree.root.data = root_node
        tree.root.label = f"📂 {escape(root_node.name)} {escape(root_node.version)}"
        self.add_children(tree.root)
        tree.root.expand()

        self.query_one("#loading-container").display = False
        self.query_one("#tree-container").display = True
        tree.focus()
