"""Tests for ProjectFileScanner."""

import os
import shutil
import tempfile
import unittest

from codenav.utils.scanner import ProjectFileScanner


class TestProjectFileScanner(unittest.TestCase):
    """Scans a small on-disk project tree."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.scanner = ProjectFileScanner(extensions=(".ts", ".tsx"))

    def tearDown(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def write(self, rel_path: str, text: str = "") -> None:
        path = os.path.join(self.temp_dir, rel_path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)

    def scan(self):
        return [os.path.relpath(p, self.temp_dir).replace(os.sep, "/") for p in self.scanner.scan(self.temp_dir)]

    def test_extensions_and_sorting(self):
        self.write("src/b.ts")
        self.write("src/a.tsx")
        self.write("src/readme.md")
        self.write("index.TS")
        self.write("src/nested/c.ts")

        self.assertEqual(self.scan(), ["index.TS", "src/a.tsx", "src/b.ts", "src/nested/c.ts"])

    def test_results_are_absolute(self):
        self.write("a.ts")
        [path] = self.scanner.scan(self.temp_dir)
        self.assertTrue(os.path.isabs(path))

    def test_always_skipped_directories(self):
        self.write("node_modules/lib/index.ts")
        self.write(".git/hooks/x.ts")
        self.write("dist/out.ts")
        self.write("src/app.ts")

        self.assertEqual(self.scan(), ["src/app.ts"])

    def test_root_gitignore(self):
        self.write(".gitignore", "generated/\n*.gen.ts\n")
        self.write("generated/types.ts")
        self.write("src/api.gen.ts")
        self.write("src/api.ts")

        self.assertEqual(self.scan(), ["src/api.ts"])

    def test_nested_gitignore_is_relative_to_its_directory(self):
        self.write("packages/web/.gitignore", "/local.ts\n")
        self.write("packages/web/local.ts")
        self.write("packages/web/src/local.ts")
        self.write("local.ts")

        self.assertEqual(self.scan(), ["local.ts", "packages/web/src/local.ts"])

    def test_deeper_gitignore_overrides(self):
        self.write(".gitignore", "*.spec.ts\n")
        self.write("src/.gitignore", "!keep.spec.ts\n")
        self.write("src/keep.spec.ts")
        self.write("src/drop.spec.ts")
        self.write("top.spec.ts")

        self.assertEqual(self.scan(), ["src/keep.spec.ts"])

    def test_empty_project(self):
        self.assertEqual(self.scanner.scan(self.temp_dir), [])


if __name__ == "__main__":
    unittest.main()
