import unittest

from gnash.app import GnashApp, findings_markdown, node_label
from gnash.core.model import Category, DependencyNode, Finding, SourceSpan


class TestNodeLabel(unittest.TestCase):

    def test_flagged_package(self):
        node = DependencyNode("evil", "6.6.6", children=[DependencyNode("x", "1")])
        label = node_label(node, immediate=2, transitive=5)

        self.assertIn("(!) evil", label)
        self.assertIn("2 immediate / 5 transitive", label)
        self.assertIn("↳[/] 1", label)

    def test_transitive_only(self):
        label = node_label(DependencyNode("wrapper", "1.0.0"), immediate=0, transitive=3)
        self.assertIn("(~) wrapper", label)
        self.assertIn("(3 transitive)", label)

    def test_clean_package(self):
        label = node_label(DependencyNode("ok", "1.0.0"), immediate=0, transitive=0)
        self.assertTrue(label.startswith("[green](•) ok"))

    def test_cycle_marker(self):
        node = DependencyNode("loop", "1.0.0", children=[DependencyNode("x", "1")])
        label = node_label(node, immediate=0, transitive=0, cycle=True)

        self.assertIn("⟳", label)
        self.assertNotIn("↳", label)

    def test_markup_is_escaped(self):
        label = node_label(DependencyNode("[bold]x", "1.0.0"), immediate=0, transitive=0)
        self.assertIn("\\[bold]x", label)


class TestBindings(unittest.TestCase):

    def test_every_binding_has_an_action(self):
        for binding in GnashApp.BINDINGS:
            self.assertTrue(hasattr(GnashApp, f"action_{binding.action}"), binding.key)


class TestFindingsMarkdown(unittest.TestCase):

    def test_no_findings(self):
        self.assertEqual(findings_markdown(DependencyNode("a", "1")), "No detections in this package.")

    def test_summary_and_locations(self):
        node = DependencyNode("a", "1.0.0", findings=[
            Finding(Category.EVAL_CALL, "index.js", SourceSpan(1, 1, 0, 9)),
            Finding(Category.EVAL_CALL, "index.js", SourceSpan(4, 4, 0, 9)),
        ])

        md = findings_markdown(node)

        self.assertIn("- **Eval call**: 2", md)
        self.assertIn("`EvalCall` Eval call", md)
        self.assertIn("`index.js` at 4:0-4:9", md)


if __name__ == "__main__":
    unittest.main()
