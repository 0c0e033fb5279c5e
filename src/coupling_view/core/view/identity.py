"""Stable view keys for file groups.

Format: ``{view_name}_{project_id}_{md5(sorted files joined by "_")}``

The digest only depends on the set of files, so the same group enumerated in
any order maps to the same key.

``_`` is also legal inside paths and project ids, so the format is not
injective: ``{"x", "y"}`` and ``{"x_y"}`` share a fingerprint, and
``("a_b", "c")`` / ``("a", "b_c")`` share a key prefix.  The format is kept
as is so keys stay compatible with views already written by earlier
deployments; callers that need to split a key should not rely on ``_``.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable

KEY_DELIMITER = "_"


def group_fingerprint(files: Iterable[str]) -> str:
    """Return the 128-bit hex digest identifying a set of file paths."""
    joined = KEY_DELIMITER.join(sorted(f.lower() for f in files))
    return hashlib.md5(joined.encode("utf-8")).hexdigest()


def derive_view_key(view_name: str, project_id: str, files: Iterable[str]) -> str:
    """Produce the deterministic key of the view tracking *files* in *project_id*.

    Args:
        view_name: Tag identifying the kind of view (e.g. ``"tcq"``).
        project_id: The project the commit belongs to.
        files: The file group.  Paths are lower-cased before hashing.

    Returns:
        The view key string.
    """
    return KEY_DELIMITER.join([view_name, str(project_id), group_fingerprint(files)])
