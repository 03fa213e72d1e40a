from __future__ import annotations

import json
from pathlib import Path

import ddbhandler


def test_version_matches_version_json() -> None:
    version_file = Path(__file__).resolve().parents[2] / "src" / "ddbhandler" / "version.json"
    data = json.loads(version_file.read_text(encoding="utf-8"))
    assert ddbhandler.__repo_version__ == data["version"]
    if "-rc." in data["version"]:
        assert "-rc." not in ddbhandler.__version__
        assert "rc" in ddbhandler.__version__
    else:
        assert ddbhandler.__version__ == data["version"]


def test_normalize_repo_version() -> None:
    assert ddbhandler._normalize_repo_version("1.2.3") == "1.2.3"
    assert ddbhandler._normalize_repo_version("1.2.3-rc.4") == "1.2.3rc4"
    assert ddbhandler._normalize_repo_version("1.2.3-rc4") == "1.2.3rc4"
