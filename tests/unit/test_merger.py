"""Unit tests for filename-keyed file merging."""

from __future__ import annotations

from lazycoder.models import TerraformFile
from lazycoder.pipeline.merger import changed_filenames, merge_files


def tf(name: str, content: str = "") -> TerraformFile:
    return TerraformFile(filename=name, content=content)


class TestMergeFiles:
    """Test insert-or-replace semantics."""

    def test_replace_in_place_and_append_new(self):
        current = [tf("a.tf", "A1"), tf("b.tf", "B1")]
        updates = [tf("b.tf", "B2"), tf("c.tf", "C1")]

        merged = merge_files(current, updates)

        assert [(f.filename, f.content) for f in merged] == [
            ("a.tf", "A1"),
            ("b.tf", "B2"),
            ("c.tf", "C1"),
        ]

    def test_no_updates_returns_equal_collection(self):
        current = [tf("a.tf", "A"), tf("b.tf", "B")]

        assert merge_files(current, []) == current

    def test_duplicate_updates_last_wins(self):
        merged = merge_files([tf("a.tf", "A")], [tf("n.tf", "1"), tf("n.tf", "2")])

        assert [(f.filename, f.content) for f in merged] == [("a.tf", "A"), ("n.tf", "2")]

    def test_filenames_unique_after_merge(self):
        merged = merge_files(
            [tf("a.tf"), tf("b.tf")], [tf("a.tf", "x"), tf("b.tf", "y"), tf("a.tf", "z")]
        )

        names = [f.filename for f in merged]
        assert names == ["a.tf", "b.tf"]
        assert merged[0].content == "z"

    def test_inputs_are_not_modified(self):
        current = [tf("a.tf", "A")]
        updates = [tf("a.tf", "B")]

        merge_files(current, updates)

        assert current[0].content == "A"


class TestChangedFilenames:
    def test_reports_new_and_modified_only(self):
        current = [tf("a.tf", "A"), tf("b.tf", "B")]
        updates = [tf("a.tf", "A"), tf("b.tf", "B2"), tf("c.tf", "C")]

        assert changed_filenames(current, updates) == ["b.tf", "c.tf"]
