"""Tests for the installed package layout."""

from __future__ import annotations

from pathlib import Path

import pytest

import nudock

_PACKAGE_DIR = Path(nudock.__file__).parent


class TestSourceFiles:
    """Every module opens with its docstring."""

    @pytest.mark.parametrize(
        "path",
        sorted(_PACKAGE_DIR.rglob("*.py")),
        ids=lambda p: str(p.relative_to(_PACKAGE_DIR)),
    )
    def test_starts_with_docstring(self, path: Path) -> None:
        """No header lines precede the module docstring."""
        assert path.read_text(encoding="utf-8").startswith('"""')
