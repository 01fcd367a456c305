from models import PatchUnit, ReviewComment
from review_parser import parse_review, reconcile, sanitize_response

UNITS = [
    PatchUnit(start_line=1, end_line=4, content="first"),
    PatchUnit(start_line=10, end_line=20, content="second"),
]


class TestParseReview:

    def test_contained_comment_is_unchanged(self):
        comments = parse_review("2-3:\nLooks fine\n---", UNITS)
        assert comments == [ReviewComment(start_line=2, end_line=3, text="Looks fine\n")]

    def test_partial_overlap_maps_to_that_unit(self):
        comments = parse_review("3-6:\nOff by one here.\n---", UNITS)
        assert len(comments) == 1
        c = comments[0]
        assert (c.start_line, c.end_line) == (1, 4)
        assert c.text.startswith("> Note:")
        assert "mapped to greatest overlap" in c.text
        assert "Original lines [3-6]" in c.text
        assert c.text.endswith("Off by one here.\n")

    def test_disjoint_comment_goes_to_first_unit(self):
        comments = parse_review("30-31:\nHmm.\n---", UNITS)
        c = comments[0]
        assert (c.start_line, c.end_line) == (1, 4)
        assert "no overlapping patch" in c.text
        assert "Original lines [30-31]" in c.text

    def test_picks_the_greatest_overlap(self):
        # 2 lines overlap the first unit, 3 the second
        c = parse_review("3-12:\nSpans both.\n", UNITS)[0]
        assert (c.start_line, c.end_line) == (10, 20)

    def test_range_header_flushes_previous_comment(self):
        comments = parse_review("1-1:\nA\n12-13:\nB\n", UNITS)
        assert [(c.start_line, c.end_line, c.text) for c in comments] == [
            (1, 1, "A\n"),
            (12, 13, "B\n"),
        ]

    def test_text_outside_sections_is_ignored(self):
        response = "Here is my review\n---\n1-2:\nX\n---\ntrailing chatter\n"
        comments = parse_review(response, UNITS)
        assert [c.text for c in comments] == ["X\n"]

    def test_consecutive_separators(self):
        comments = parse_review("1-2:\nX\n---\n---\n", UNITS)
        assert len(comments) == 1

    def test_trailing_comment_without_separator_is_kept(self):
        comments = parse_review("10-11:\nfirst line\nsecond line", UNITS)
        assert comments[0].text == "first line\nsecond line\n"

    def test_leading_whitespace_before_range(self):
        comments = parse_review("  2-3:  \nIndented\n---", UNITS)
        assert (comments[0].start_line, comments[0].end_line) == (2, 3)

    def test_reversed_range_is_normalized(self):
        comments = parse_review("4-2:\nBackwards\n---", UNITS)
        assert (comments[0].start_line, comments[0].end_line) == (2, 4)

    def test_range_inside_prose_is_not_a_header(self):
        comments = parse_review("See lines 2-3: they are fine\n", UNITS)
        assert comments == []

    def test_empty_response(self):
        assert parse_review("", UNITS) == []
        assert parse_review("no ranges at all", UNITS) == []

    def test_no_known_units_drops_comments(self):
        assert parse_review("2-3:\nX\n---", []) == []

    def test_line_number_prefixes_stripped_in_diff_blocks(self):
        response = "2-3:\nFix it:\n```diff\n2: -old\n3: +new\n```\n---"
        comments = parse_review(response, UNITS)
        assert comments[0].text == "Fix it:\n```diff\n-old\n+new\n```\n"


class TestSanitizeResponse:

    def test_suggestion_block(self):
        text = "```suggestion\n  12: foo()\n13: bar()\n```"
        assert sanitize_response(text) == "```suggestion\nfoo()\nbar()\n```"

    def test_other_blocks_untouched(self):
        text = "```python\n2: keep\n```\n2: also kept"
        assert sanitize_response(text) == text

    def test_multiple_blocks(self):
        text = "```diff\n1: a\n```\nmiddle 5: x\n```diff\n2: b\n```"
        assert sanitize_response(text) == "```diff\na\n```\nmiddle 5: x\n```diff\nb\n```"


def test_reconcile_returns_contained_comment_as_is():
    comment = ReviewComment(start_line=10, end_line=20, text="whole unit\n")
    assert reconcile(comment, UNITS) is comment
