import asyncio
import unittest

from portfolio_chat.tools.github.read_file_tool import ReadFileTool
from tests.fakes import FakeSourceHost


class ReadFileToolTests(unittest.TestCase):
    def setUp(self) -> None:
        self.host = FakeSourceHost(files={
            "jane/ResearcherX/src/main.py": "print('hi')",
            "other/lib/README.md": "# lib",
        })
        self.tool = ReadFileTool(self.host, "jane")

    def test_name_and_required_params(self) -> None:
        self.assertEqual("read_file", self.tool.name)
        self.assertEqual(["repo", "path"], self.tool.input_schema["required"])

    def test_reads_with_default_owner(self) -> None:
        result = asyncio.run(self.tool.execute({"repo": "ResearcherX", "path": "/src/main.py"}))
        self.assertEqual("File: jane/ResearcherX/src/main.py\n\nprint('hi')", result)

    def test_owner_in_repo_overrides_default(self) -> None:
        result = asyncio.run(self.tool.execute({"repo": "other/lib", "path": "README.md"}))
        self.assertIn("# lib", result)

    def test_missing_file(self) -> None:
        result = asyncio.run(self.tool.execute({"repo": "ResearcherX", "path": "nope.py"}))
        self.assertEqual("File not found: jane/ResearcherX/nope.py", result)

    def test_missing_arguments(self) -> None:
        result = asyncio.run(self.tool.execute({"repo": "ResearcherX"}))
        self.assertTrue(result.startswith("Error:"))


if __name__ == "__main__":
    unittest.main()
