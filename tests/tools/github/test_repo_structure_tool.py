import asyncio
import unittest

from portfolio_chat.retrieval.cache import RetrievalCache
from portfolio_chat.tools.github.repo_structure_tool import RepoStructureTool, is_interesting_path
from tests.fakes import FakeClock, FakeSourceHost


class IsInterestingPathTests(unittest.TestCase):
    def test_source_files_are_kept(self) -> None:
        for path in ("src/main.py", "README.md", "app/page.tsx"):
            with self.subTest(path=path):
                self.assertTrue(is_interesting_path(path))

    def test_build_output_and_binaries_are_dropped(self) -> None:
        for path in ("node_modules/react/index.js", "web/dist/app.js", "package-lock.json", "public/logo.png", "a.min.js"):
            with self.subTest(path=path):
                self.assertFalse(is_interesting_path(path))


class RepoStructureToolTests(unittest.TestCase):
    def setUp(self) -> None:
        self.host = FakeSourceHost(trees={
            "jane/ResearcherX@main": ["src/main.py", "node_modules/x/index.js", "README.md"],
            "jane/Legacy@master": ["index.js"],
        })
        self.tool = RepoStructureTool(self.host, "jane", RetrievalCache(clock=FakeClock()))

    def test_lists_filtered_paths(self) -> None:
        result = asyncio.run(self.tool.execute({"repo": "ResearcherX"}))

        self.assertTrue(result.startswith("Repository: jane/ResearcherX (branch main) -- 2 files"))
        self.assertIn("src/main.py", result)
        self.assertNotIn("node_modules", result)

    def test_falls_back_to_master(self) -> None:
        result = asyncio.run(self.tool.execute({"repo": "Legacy"}))

        self.assertIn("index.js", result)
        self.assertEqual([("jane", "Legacy", "main"), ("jane", "Legacy", "master")], self.host.tree_calls)

    def test_tree_is_cached(self) -> None:
        asyncio.run(self.tool.execute({"repo": "ResearcherX"}))
        asyncio.run(self.tool.execute({"repo": "ResearcherX"}))
        self.assertEqual(1, len(self.host.tree_calls))

    def test_readme_follows_the_file_list(self) -> None:
        self.host.files["jane/ResearcherX/README.md"] = "# ResearcherX\n\nAgents that read papers.\n"

        result = asyncio.run(self.tool.execute({"repo": "ResearcherX"}))

        self.assertTrue(result.endswith("README.md\n\nREADME:\n# ResearcherX\n\nAgents that read papers."))

    def test_long_readme_is_cut(self) -> None:
        self.host.files["jane/ResearcherX/README.md"] = "x" * 5000

        result = asyncio.run(self.tool.execute({"repo": "ResearcherX"}))

        self.assertTrue(result.endswith("README:\n" + "x" * 1500 + "\n..."))

    def test_no_readme_section_without_readme(self) -> None:
        self.assertNotIn("README:", asyncio.run(self.tool.execute({"repo": "ResearcherX"})))

    def test_unknown_repo(self) -> None:
        result = asyncio.run(self.tool.execute({"repo": "Ghost"}))
        self.assertEqual("No files found in jane/Ghost (branch main).", result)

    def test_repo_is_required(self) -> None:
        self.assertEqual("Error: 'repo' is required", asyncio.run(self.tool.execute({})))


if __name__ == "__main__":
    unittest.main()
