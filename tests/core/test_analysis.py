import json
import os
import shutil
import tempfile
import unittest

from gnash.config import Settings
from gnash.core.aggregate import flatten, immediate_count, transitive_count
from gnash.core.analysis import analyze_project
from gnash.core.errors import PathResolutionFailure
from gnash.core.graph import find_path, resolve_paths
from gnash.core.model import Category, DependencyNode
from gnash.core.scanner import list_source_files, scan_package


def write(path, content=""):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write(content if isinstance(content, str) else json.dumps(content))


def package(root, rel, name, version, source=None):
    directory = os.path.join(root, rel)
    write(os.path.join(directory, "package.json"), {"name": name, "version": version})
    if source is not None:
        write(os.path.join(directory, "index.js"), source)
    return directory


class TempProjectCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.root = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.root)

    def make_scenario(self):
        """
        proj -> a@1 -> b@1 -> c@2 (nested under b)
                    -> c@1 (hoisted)
        """
        write(os.path.join(self.root, "package.json"), {
            "name": "proj", "version": "1.0.0", "dependencies": {"a": "^1.0.0"},
        })
        write(os.path.join(self.root, "package-lock.json"), {
            "name": "proj",
            "lockfileVersion": 1,
            "dependencies": {
                "a": {"version": "1.0.0", "requires": {"b": "^1.0.0", "c": "^1.0.0"}},
                "b": {
                    "version": "1.0.0",
                    "requires": {"c": "^2.0.0"},
                    "dependencies": {"c": {"version": "2.0.0"}},
                },
                "c": {"version": "1.0.0"},
            },
        })
        package(self.root, "node_modules/a", "a", "1.0.0", "const fs = require('fs');\neval(code);\n")
        package(self.root, "node_modules/b", "b", "1.0.0", "module.exports = process.env.TOKEN;\n")
        package(self.root, "node_modules/c", "c", "1.0.0", "module.exports = 1;\n")
        package(self.root, "node_modules/b/node_modules/c", "c", "2.0.0", "module.exports = 2;\n")

    def make_shared_scenario(self):
        """
        proj -> a@1 -> b@1 -> c@1
                    -> c@1 (same install as b's, nested under a)
             -> c@2 (hoisted)
        """
        write(os.path.join(self.root, "package.json"), {
            "name": "proj", "version": "1.0.0", "dependencies": {"a": "^1.0.0", "c": "^2.0.0"},
        })
        write(os.path.join(self.root, "package-lock.json"), {
            "name": "proj",
            "lockfileVersion": 1,
            "dependencies": {
                "a": {
                    "version": "1.0.0",
                    "requires": {"b": "^1.0.0", "c": "^1.0.0"},
                    "dependencies": {
                        "b": {"version": "1.0.0", "requires": {"c": "^1.0.0"}},
                        "c": {"version": "1.0.0"},
                    },
                },
                "c": {"version": "2.0.0"},
            },
        })
        package(self.root, "node_modules/a", "a", "1.0.0", "const r = require;\nrequire('net');\n")
        package(self.root, "node_modules/a/node_modules/b", "b", "1.0.0", "module.exports = process.env.HOME;\n")
        package(self.root, "node_modules/a/node_modules/c", "c", "1.0.0", "module.exports = 1;\n")
        package(self.root, "node_modules/c", "c", "2.0.0", "module.exports = 2;\n")


class TestFindPath(TempProjectCase):

    async def test_direct_node_modules(self):
        a = package(self.root, "node_modules/a", "a", "1.0.0")
        self.assertEqual(await find_path("a", self.root), a)

    async def test_nested_copy_wins(self):
        b = package(self.root, "node_modules/b", "b", "1.0.0")
        nested = package(self.root, "node_modules/b/node_modules/c", "c", "2.0.0")
        package(self.root, "node_modules/c", "c", "1.0.0")

        self.assertEqual(await find_path("c", b), nested)

    async def test_walks_up_to_enclosing_package(self):
        write(os.path.join(self.root, "package.json"), {"name": "proj"})
        b = package(self.root, "node_modules/b", "b", "1.0.0")
        c = package(self.root, "node_modules/c", "c", "1.0.0")

        self.assertEqual(await find_path("c", b), c)

    async def test_missing_package(self):
        with self.assertRaises(PathResolutionFailure) as ctx:
            await find_path("gnash-no-such-package", self.root)
        self.assertEqual(ctx.exception.name, "gnash-no-such-package")


class TestResolvePaths(TempProjectCase):

    async def test_same_directory_becomes_one_node(self):
        write(os.path.join(self.root, "package.json"), {"name": "proj"})
        for name in ("a", "b", "c"):
            package(self.root, f"node_modules/{name}", name, "1.0.0")

        a = DependencyNode("a", "1.0.0", children=[DependencyNode("c", "1.0.0")])
        b = DependencyNode("b", "1.0.0", children=[DependencyNode("c", "1.0.0")])
        root = DependencyNode("proj", "1.0.0", children=[a, b])

        resolved = await resolve_paths(root, self.root)
        new_a, new_b = resolved.children

        self.assertIs(new_a.children[0], new_b.children[0])
        self.assertEqual(new_a.children[0].install_path, os.path.join(self.root, "node_modules", "c"))
        self.assertEqual(resolved.install_path, os.path.abspath(self.root))

    async def test_cycles_terminate(self):
        write(os.path.join(self.root, "package.json"), {"name": "proj"})
        package(self.root, "node_modules/a", "a", "1.0.0")
        package(self.root, "node_modules/b", "b", "1.0.0")

        a = DependencyNode("a", "1.0.0")
        b = DependencyNode("b", "1.0.0", children=[a])
        a.children.append(b)
        root = DependencyNode("proj", "1.0.0", children=[a])

        resolved = await resolve_paths(root, self.root)
        new_a = resolved.children[0]

        self.assertIs(new_a.children[0].children[0], new_a)


class TestScanner(TempProjectCase):

    async def test_list_source_files(self):
        write(os.path.join(self.root, "index.js"))
        write(os.path.join(self.root, "lib", "util.js"))
        write(os.path.join(self.root, "lib", "notes.md"))
        write(os.path.join(self.root, "node_modules", "dep", "index.js"))
        write(os.path.join(self.root, "lib", "node_modules", "other.js"))

        files = await list_source_files(self.root)

        self.assertEqual(files, [
            os.path.join(self.root, "index.js"),
            os.path.join(self.root, "lib", "util.js"),
        ])

    async def test_symlinked_directories_are_skipped(self):
        write(os.path.join(self.root, "index.js"))
        os.symlink(self.root, os.path.join(self.root, "loop"))

        files = await list_source_files(self.root)
        self.assertEqual(files, [os.path.join(self.root, "index.js")])

    async def test_extensions(self):
        write(os.path.join(self.root, "a.js"))
        write(os.path.join(self.root, "b.mjs"))
        write(os.path.join(self.root, "c.ts"))

        files = await list_source_files(self.root, (".js", ".mjs"))
        self.assertEqual([os.path.basename(f) for f in files], ["a.js", "b.mjs"])

    async def test_scan_package_contains_syntax_errors(self):
        write(os.path.join(self.root, "bad.js"), "function (")
        write(os.path.join(self.root, "good.js"), "require('http');")
        node = DependencyNode("pkg", "1.0.0", install_path=self.root)

        await scan_package(node)

        self.assertEqual(
            [f.category for f in node.findings],
            [Category.SYNTAX_ERROR, Category.REQUIRED_IO_MODULE],
        )
        self.assertEqual(node.findings[1].source_file, os.path.join(self.root, "good.js"))

    async def test_scan_package_needs_install_path(self):
        with self.assertRaises(ValueError):
            await scan_package(DependencyNode("pkg", "1.0.0"))


class TestAnalyzeProject(TempProjectCase):

    async def test_scenario(self):
        self.make_scenario()
        statuses = []
        progress = []

        root = await analyze_project(self.root, on_status=statuses.append, on_progress=lambda d, t: progress.append((d, t)))

        packages = {p.key: p for p in flatten(root)}
        self.assertEqual(sorted(packages), ["a 1.0.0", "b 1.0.0", "c 1.0.0", "c 2.0.0", "proj 1.0.0"])

        a = packages["a 1.0.0"]
        self.assertEqual(immediate_count(a), 2)
        self.assertEqual(transitive_count(a), 3)
        self.assertEqual(
            [f.category for f in a.findings],
            [Category.REQUIRED_IO_MODULE, Category.EVAL_CALL],
        )

        c2 = packages["c 2.0.0"]
        self.assertEqual((immediate_count(c2), transitive_count(c2)), (0, 0))
        self.assertEqual(transitive_count(root), 3)

        self.assertEqual(len(statuses), 3)
        self.assertEqual(progress[-1], (5, 5))

    async def test_shared_install_and_aliased_require(self):
        self.make_shared_scenario()

        root = await analyze_project(self.root)

        a, c2 = root.children
        self.assertEqual((a.key, c2.key), ("a 1.0.0", "c 2.0.0"))
        b, c1 = a.children
        self.assertEqual((b.key, c1.key), ("b 1.0.0", "c 1.0.0"))
        self.assertIs(b.children[0], c1)

        self.assertEqual(
            [f.category for f in a.findings],
            [Category.REQUIRED_IO_MODULE, Category.OBFUSCATED_REQUIRE_IDENTIFIER],
        )
        self.assertEqual(a.findings[0].label, "net")
        self.assertEqual(transitive_count(a), 3)
        self.assertEqual((immediate_count(c2), transitive_count(c2)), (0, 0))

    async def test_every_node_is_scanned_once(self):
        self.make_scenario()
        root = await analyze_project(self.root, Settings(max_open_files=1))

        for node in flatten(root):
            self.assertIsNotNone(node.findings, node.key)


if __name__ == "__main__":
    unittest.main()
