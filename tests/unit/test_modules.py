"""Unit tests for custom module context loading."""

from __future__ import annotations

import io
import zipfile

import pytest

from lazycoder.config import ModulesConfig
from lazycoder.pipeline.modules import (
    ModuleExtractionError,
    is_ignored_path,
    load_module_context,
    read_archive,
    select_context_files,
)


def make_zip(entries: dict[str, str | None]) -> bytes:
    """Build an in-memory zip; a None value creates a directory entry."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in entries.items():
            if content is None:
                archive.writestr(zipfile.ZipInfo(name), "")
            else:
                archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def module_zip() -> bytes:
    return make_zip(
        {
            "modules/": None,
            "modules/vpc/": None,
            "modules/vpc/main.tf": 'variable "cidr" {}',
            "modules/vpc/README.md": "# VPC module",
            "modules/vpc/logo.png": "\x89PNG",
            "__MACOSX/modules/vpc/._main.tf": "junk",
            ".terraform.lock.hcl": "lock",
            "modules/.hidden/secret.tf": "hidden",
            "settings.yaml": "a: 1",
        }
    )


class TestReadArchive:
    def test_directories_map_to_none(self, module_zip):
        entries = read_archive(module_zip)

        assert entries["modules/"] is None
        assert entries["modules/vpc/main.tf"] == b'variable "cidr" {}'

    def test_bad_archive_raises(self):
        with pytest.raises(zipfile.BadZipFile):
            read_archive(b"definitely not a zip")


class TestIsIgnoredPath:
    @pytest.mark.parametrize(
        "path,expected",
        [
            (".gitignore", True),
            ("__MACOSX/a.tf", True),
            ("modules/.hidden/a.tf", True),
            ("modules/vpc/main.tf", False),
            ("main.tf", False),
        ],
    )
    def test_prefixes(self, path, expected):
        assert is_ignored_path(path, [".", "__MACOSX"]) == expected


class TestSelectContextFiles:
    def test_filters_entries(self, module_zip):
        files = select_context_files(read_archive(module_zip), ModulesConfig())

        assert [f.filename for f in files] == [
            "modules/vpc/main.tf",
            "modules/vpc/README.md",
            "settings.yaml",
        ]
        assert files[0].content == 'variable "cidr" {}'

    def test_respects_max_files(self):
        entries = {f"m{i}.tf": b"x" for i in range(10)}

        files = select_context_files(entries, ModulesConfig(max_files=3))

        assert [f.filename for f in files] == ["m0.tf", "m1.tf", "m2.tf"]

    def test_invalid_utf8_is_replaced(self):
        files = select_context_files({"bad.txt": b"ok \xff"}, ModulesConfig())

        assert files[0].content.startswith("ok ")

    def test_extension_match_is_case_insensitive(self):
        files = select_context_files({"MAIN.TF": b"x"}, ModulesConfig())

        assert [f.filename for f in files] == ["MAIN.TF"]


class TestLoadModuleContext:
    def test_loads_with_default_config(self, module_zip):
        files = load_module_context(module_zip)

        assert len(files) == 3

    def test_invalid_archive_raises_extraction_error(self):
        with pytest.raises(ModuleExtractionError, match="valid ZIP file"):
            load_module_context(b"PK\x03\x04 truncated")

    def test_empty_archive_yields_no_files(self):
        assert load_module_context(make_zip({})) == []
