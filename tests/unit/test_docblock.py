"""Tests for docstring block parsing."""

from __future__ import annotations

from openapi_extractor.annotations.docblock import parse_docblock

DOCSTRING = """Get a todo item

Returns the item with its notes.
Notes may be empty.

@param int item_id ID of the
    item to load
@return DataResponse<200, TodoItem, {}>

200: Item returned
404: Item not
    found
"""


class TestParseDocblock:
    def test_empty(self) -> None:
        block = parse_docblock(None)
        assert block.summary == ""
        assert block.tags == []
        assert block.status_lines == []

    def test_summary_and_description(self) -> None:
        block = parse_docblock(DOCSTRING)
        assert block.summary == "Get a todo item"
        assert block.description == "Returns the item with its notes. Notes may be empty."

    def test_tags_with_continuation(self) -> None:
        block = parse_docblock(DOCSTRING)
        assert [tag.name for tag in block.tags] == ["param", "return"]
        assert block.tags[0].text == "int item_id ID of the item to load"
        assert block.tagged("return")[0].text == "DataResponse<200, TodoItem, {}>"
        assert block.has_tag("param")
        assert not block.has_tag("throws")

    def test_status_lines(self) -> None:
        block = parse_docblock(DOCSTRING)
        assert [(s.token, s.text) for s in block.status_lines] == [
            ("200", "Item returned"),
            ("404", "Item not found"),
        ]

    def test_absolute_line_numbers(self) -> None:
        block = parse_docblock(DOCSTRING, first_line=10)
        assert block.tags[0].line == 15
        assert block.tags[1].line == 17
        assert block.status_lines[0].line == 19

    def test_symbolic_status_line_without_text(self) -> None:
        block = parse_docblock("@return DataResponse<404, null>\n\nHttp.STATUS_NOT_FOUND:\n")
        assert block.status_lines[0].token == "Http.STATUS_NOT_FOUND"
        assert block.status_lines[0].text == ""

    def test_dotted_prose_is_not_a_status_line(self) -> None:
        block = parse_docblock("Summary\n\nconfig.php: read at boot\n\n200: Ok\n")
        assert [s.token for s in block.status_lines] == ["200"]
        assert block.description == "config.php: read at boot"

    def test_blank_line_ends_a_tag(self) -> None:
        block = parse_docblock("@throws NotFoundError Missing\n\nnot part of the tag\n")
        assert block.tags[0].text == "NotFoundError Missing"

    def test_prose_after_tags_is_ignored(self) -> None:
        block = parse_docblock("Summary\n\n@param int id The id\n\nTrailing prose\n")
        assert block.summary == "Summary"
        assert block.description == ""
