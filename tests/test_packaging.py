"""
Packaging metadata checks.
"""

import re
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


class TestPackaging:

    def test_readme_points_at_project_readme(self):
        pyproject = (ROOT / "pyproject.toml").read_text()
        readme = re.search(r'^readme = "([^"]+)"', pyproject, re.M).group(1)

        assert readme == "README.md"
        assert (ROOT / readme).read_text().startswith("# Memory Proxy")
