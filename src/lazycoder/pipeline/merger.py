"""Filename-keyed merge of refinement updates into a file collection."""

from __future__ import annotations

from collections.abc import Iterable

from lazycoder.models import TerraformFile


def merge_files(
    current: Iterable[TerraformFile],
    updates: Iterable[TerraformFile],
) -> list[TerraformFile]:
    """Insert-or-replace ``updates`` into ``current`` by filename.

    Files present in both keep their position in ``current`` and take the
    content from ``updates``. Filenames only in ``updates`` are appended in
    the order given. If ``updates`` repeats a filename, the last entry wins.

    Args:
        current: Existing ordered file collection (unique filenames)
        updates: Files returned by the refine stage

    Returns:
        New ordered collection with every filename exactly once

    Example:
        >>> a, b = TerraformFile(filename="a.tf", content=""), TerraformFile(filename="b.tf", content="")
        >>> [f.filename for f in merge_files([a, b], [TerraformFile(filename="c.tf", content="x")])]
        ['a.tf', 'b.tf', 'c.tf']
    """
    # dicts keep first-insertion order when a key is reassigned
    by_name: dict[str, TerraformFile] = {f.filename: f for f in current}
    for f in updates:
        by_name[f.filename] = f
    return list(by_name.values())


def changed_filenames(
    current: Iterable[TerraformFile],
    updates: Iterable[TerraformFile],
) -> list[str]:
    """Filenames in ``updates`` that are new or whose content differs."""
    existing = {f.filename: f.content for f in current}
    return [f.filename for f in updates if existing.get(f.filename) != f.content]
