"""Directory-backed department template source."""

from __future__ import annotations

from pathlib import Path
from typing import Final

from .interfaces import DepartmentTemplateSourcePort


class DirectoryTemplateSource(DepartmentTemplateSourcePort):
    """List deployable departments from `*_department.*` template files."""

    _TEMPLATE_SUFFIXES: Final[tuple[str, ...]] = (".yml", ".yaml", ".rb", ".py")
    _TEMPLATE_STEM_SUFFIX: Final[str] = "_department"
    _EXCLUDED_STEMS: Final[frozenset[str]] = frozenset({"generic_department"})

    def __init__(self, directory: str | Path):
        """Initialize template source.

        Args:
            directory: Directory holding department templates.

        Raises:
            ValueError: Raised when directory is blank.
        """

        if not str(directory).strip():
            raise ValueError("directory must not be blank")
        self._directory = Path(directory)

    def template_list_department_names(self) -> tuple[str, ...]:
        if not self._directory.is_dir():
            raise FileNotFoundError(f"department template directory not found: {self._directory}")

        department_names = {
            template_path.stem
            for template_path in self._directory.iterdir()
            if template_path.is_file()
            and template_path.suffix in self._TEMPLATE_SUFFIXES
            and template_path.stem.endswith(self._TEMPLATE_STEM_SUFFIX)
            and template_path.stem not in self._EXCLUDED_STEMS
        }
        return tuple(sorted(department_names))
