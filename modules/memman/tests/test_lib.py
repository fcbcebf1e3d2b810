"""Tests for shared library files: hashing, tokens, markdown regions."""

from memman.lib.hashing import content_hash, file_hash, hash_file
from memman.lib.markdown import (
    end_marker,
    find_managed_span,
    inject_managed_section,
    managed_ranges,
    remove_managed_section,
    start_marker,
)
from memman.lib.tokens import estimate_tokens, jaccard, text_similarity, word_set


# ---------------------------------------------------------------------------
# lib/hashing.py
# ---------------------------------------------------------------------------

class TestContentHash:

    def test_sixteen_lowercase_hex_chars(self):
        h = content_hash("Use pnpm")
        assert len(h) == 16
        assert all(c in "0123456789abcdef" for c in h)

    def test_trims_surrounding_whitespace(self):
        assert content_hash("  - Use pnpm\n") == content_hash("- Use pnpm")

    def test_inner_whitespace_matters(self):
        assert content_hash("Use  pnpm") != content_hash("Use pnpm")

    def test_case_matters(self):
        assert content_hash("use pnpm") != content_hash("Use pnpm")

    def test_empty_text_hashes(self):
        assert content_hash("") == content_hash("   ")


class TestFileHash:

    def test_full_digest(self):
        assert len(file_hash("abc")) == 64

    def test_untrimmed(self):
        assert file_hash("abc\n") != file_hash("abc")

    def test_missing_file_is_empty_string(self, tmp_path):
        assert hash_file(tmp_path / "nope.md") == ""

    def test_existing_file(self, tmp_path):
        p = tmp_path / "a.md"
        p.write_text("# A\n", encoding="utf-8")
        assert hash_file(p) == file_hash("# A\n")


# ---------------------------------------------------------------------------
# lib/tokens.py
# ---------------------------------------------------------------------------

class TestEstimateTokens:

    def test_empty(self):
        assert estimate_tokens("") == 0

    def test_rounds_up(self):
        assert estimate_tokens("abcde") == 2

    def test_exact_multiple(self):
        assert estimate_tokens("a" * 400) == 100


class TestSimilarity:

    def test_word_set_drops_short_words(self):
        assert word_set("Use a db in it") == {"use"}

    def test_jaccard_both_empty_is_one(self):
        assert jaccard(set(), set()) == 1.0

    def test_jaccard_one_empty_is_zero(self):
        assert jaccard({"a"}, set()) == 0.0

    def test_identical_text(self):
        assert text_similarity("Use pnpm for packages", "use PNPM for packages") == 1.0

    def test_partial_overlap(self):
        # {use, pnpm, packages} vs {use, yarn, packages}
        assert abs(text_similarity("use pnpm packages", "use yarn packages") - 0.5) < 1e-9


# ---------------------------------------------------------------------------
# lib/markdown.py
# ---------------------------------------------------------------------------

class TestManagedRegions:

    def test_append_to_empty(self):
        out = inject_managed_section("", "synced", "- a")
        assert out == f"{start_marker('synced')}\n- a\n{end_marker('synced')}\n"

    def test_append_leaves_one_blank_line(self):
        out = inject_managed_section("# Title\n\n\n", "synced", "- a")
        assert out.startswith("# Title\n\n<!-- memman:start id=synced -->\n")
        assert out.endswith("<!-- memman:end id=synced -->\n")

    def test_replace_keeps_outside_bytes(self):
        before = "# Title\nintro  \n"
        after = "\n## Tail\ntrailing text\n"
        existing = before + start_marker("x") + "\nold\n" + end_marker("x") + after
        out = inject_managed_section(existing, "x", "new")
        assert out == before + start_marker("x") + "\nnew\n" + end_marker("x") + after

    def test_inject_is_idempotent(self):
        once = inject_managed_section("# T\n", "synced", "- a\n- b")
        assert inject_managed_section(once, "synced", "- a\n- b") == once

    def test_other_ids_untouched(self):
        existing = inject_managed_section("# T\n", "other", "keep me")
        out = inject_managed_section(existing, "synced", "- a")
        assert "keep me" in out
        assert len(managed_ranges(out)) == 2

    def test_find_span_missing_end(self):
        assert find_managed_span(start_marker("x") + "\nbody", "x") is None

    def test_remove_collapses_blank_lines(self):
        existing = "# T\n\n" + start_marker("x") + "\nbody\n" + end_marker("x") + "\n\n## After\n"
        assert remove_managed_section(existing, "x") == "# T\n\n## After\n"

    def test_remove_trailing_region(self):
        existing = inject_managed_section("# T\n", "x", "body")
        assert remove_managed_section(existing, "x") == "# T\n"

    def test_remove_missing_id_is_noop(self):
        assert remove_managed_section("# T\n", "x") == "# T\n"

    def test_quoted_markers_are_prose(self):
        prose = ("# T\nWrap synced text in `<!-- memman:start id=synced -->` "
                 "and `<!-- memman:end id=synced -->`.\n")

        out = inject_managed_section(prose, "synced", "- a")

        assert find_managed_span(prose, "synced") is None
        assert managed_ranges(prose) == []
        assert out == prose + "\n" + start_marker("synced") + "\n- a\n" + end_marker("synced") + "\n"
        assert remove_managed_section(prose, "synced") == prose

    def test_quoted_marker_before_real_region(self):
        prose = "Markers look like `<!-- memman:start id=x -->`.\n\n"
        existing = prose + start_marker("x") + "\nold\n" + end_marker("x") + "\n"

        assert inject_managed_section(existing, "x", "new") == (
            prose + start_marker("x") + "\nnew\n" + end_marker("x") + "\n"
        )
        assert remove_managed_section(existing, "x") == prose.rstrip() + "\n"
        assert [r[1] for r in managed_ranges(existing)] == [len(prose)]

    def test_indented_marker_lines_count(self):
        existing = "# T\n  " + start_marker("x") + "  \nold\n\t" + end_marker("x") + "\n"
        span = find_managed_span(existing, "x")
        assert existing[span[0]:span[1]] == start_marker("x") + "  \nold\n\t" + end_marker("x")
