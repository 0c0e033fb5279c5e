"""Tests for view key derivation."""

from __future__ import annotations

import hashlib
import itertools

from coupling_view.core.view.identity import derive_view_key, group_fingerprint


class TestGroupFingerprint:
    def test_matches_md5_of_sorted_joined_names(self) -> None:
        expected = hashlib.md5(b"a.js_b.js").hexdigest()
        assert group_fingerprint(["b.js", "a.js"]) == expected

    def test_is_128_bit_hex(self) -> None:
        digest = group_fingerprint(["src/app.py"])
        assert len(digest) == 32
        int(digest, 16)

    def test_lower_cases_paths(self) -> None:
        assert group_fingerprint(["SRC/App.py"]) == group_fingerprint(["src/app.py"])

    def test_delimiter_inside_path_is_not_escaped(self) -> None:
        # Existing keys depend on the plain "_" join.
        assert group_fingerprint(["x", "y"]) == group_fingerprint(["x_y"])


class TestDeriveViewKey:
    def test_format(self) -> None:
        key = derive_view_key("tcq", "p1", ["a.js"])
        digest = hashlib.md5(b"a.js").hexdigest()
        assert key == f"tcq_p1_{digest}"

    def test_order_independent(self) -> None:
        files = ["src/a.py", "src/b.py", "lib/c.py"]
        keys = {derive_view_key("tcq", "p1", p) for p in itertools.permutations(files)}
        assert len(keys) == 1

    def test_different_sets_differ(self) -> None:
        assert derive_view_key("tcq", "p1", ["a.js"]) != derive_view_key("tcq", "p1", ["a.js", "b.js"])

    def test_project_scoped(self) -> None:
        assert derive_view_key("tcq", "p1", ["a.js"]) != derive_view_key("tcq", "p2", ["a.js"])

    def test_view_name_scoped(self) -> None:
        assert derive_view_key("tcq", "p1", ["a.js"]) != derive_view_key("other", "p1", ["a.js"])

    def test_does_not_mutate_input(self) -> None:
        files = ["b.js", "a.js"]
        derive_view_key("tcq", "p1", files)
        assert files == ["b.js", "a.js"]

    def test_non_string_project_id(self) -> None:
        assert derive_view_key("tcq", 42, ["a.js"]).startswith("tcq_42_")  # type: ignore[arg-type]
