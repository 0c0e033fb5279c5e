"""File-group enumeration.

Every non-empty subset of a commit's changed files is a candidate coupling
group.  The number of groups is ``2**n - 1`` for ``n`` files, so cost grows
exponentially with commit size; no cap is applied here.
"""

from __future__ import annotations

from collections.abc import Sequence

from coupling_view.core.view.model import FileGroup


def power_set(files: Sequence[str]) -> list[FileGroup]:
    """Return every non-empty subset of *files*.

    Subsets are enumerated by bitmask from ``1`` to ``2**n - 1``; bit ``j``
    selects ``files[j]``.  Members keep their original relative order.

    Args:
        files: Distinct file paths.

    Returns:
        A list of ``2**n - 1`` tuples, or an empty list when *files* is empty.
    """
    items = list(files)
    size = len(items)
    groups: list[FileGroup] = []
    for mask in range(1, 1 << size):
        groups.append(tuple(items[j] for j in range(size) if mask & (1 << j)))
    return groups
