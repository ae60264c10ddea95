from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_STANDARDS_DIR = Path(__file__).parent / "standards"
TEST_STANDARDS_FILE = "TEST_STANDARDS.md"
VALIDATION_LOOP_FILE = "VALIDATION_LOOP.md"


class StandardsCache:
    """Test-writing standards documents, read once on first use.

    A missing document is cached as an empty string so the lookup is not
    repeated for the lifetime of the cache.
    """

    def __init__(self, directory: Path = DEFAULT_STANDARDS_DIR) -> None:
        self.directory = directory
        self._documents: dict[str, str] = {}

    def _load(self, filename: str) -> str:
        if filename in self._documents:
            return self._documents[filename]
        path = self.directory / filename
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("Standards document %s unavailable: %s", path, exc)
            content = ""
        self._documents[filename] = content
        return content

    def test_standards(self) -> str:
        return self._load(TEST_STANDARDS_FILE)

    def validation_loop(self) -> str:
        return self._load(VALIDATION_LOOP_FILE)

    def ensure_loaded(self) -> bool:
        """Load both documents; True when both have content."""
        return bool(self.test_standards()) and bool(self.validation_loop())
