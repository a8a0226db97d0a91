"""Tests for department template discovery and registry diffs."""

from __future__ import annotations

import pytest

from city_services.adapters import DirectoryTemplateSource
from city_services.discovery import RegistryScanner


def test_discovery_directory_source_lists_department_templates(tmp_path) -> None:
    for file_name in (
        "water_department.rb",
        "parks_department.yml",
        "generic_department.rb",
        "notes.txt",
        "council.rb",
        "fire_department.py",
    ):
        (tmp_path / file_name).write_text("name: test\n", encoding="utf-8")
    (tmp_path / "archive_department.rb").mkdir()

    department_names = DirectoryTemplateSource(tmp_path).template_list_department_names()

    assert department_names == ("fire_department", "parks_department", "water_department")


def test_discovery_missing_directory_raises_os_error(tmp_path) -> None:
    with pytest.raises(OSError):
        DirectoryTemplateSource(tmp_path / "missing").template_list_department_names()


def test_discovery_scan_reports_added_and_removed_names(template_source_factory) -> None:
    template_source = template_source_factory(["water_department", "parks_department"])
    scanner = RegistryScanner(template_source=template_source)

    first_scan = scanner.registry_scan()
    template_source.department_names = ["water_department", "fire_department"]
    second_scan = scanner.registry_scan()
    third_scan = scanner.registry_scan()

    assert first_scan.added_names == ("parks_department", "water_department")
    assert second_scan.added_names == ("fire_department",)
    assert second_scan.removed_names == ("parks_department",)
    assert third_scan.scan_has_changes() is False
    assert scanner.registry_has_template("fire_department") is True
    assert scanner.registry_has_template("parks_department") is False
