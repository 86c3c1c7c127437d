"""Tests for turning pasted checklist text into template questions."""

from auditking.app.checklist_parser import parse_checklist_text


class TestParseChecklistText:
    def test_mixed_lines(self):
        items = parse_checklist_text("Are exits clear?\nNotes\n\n")

        assert [(item.item_id, item.kind, item.label) for item in items] == [
            ("q1", "yesno", "Are exits clear?"),
            ("q2", "text", "Notes"),
        ]
        assert all(item.required is False for item in items)
        assert all(item.options == [] for item in items)

    def test_bullets_split_like_newlines(self):
        items = parse_checklist_text("• Gloves on?  • Ladder inspected? • Comments")

        assert [item.label for item in items] == ["Gloves on?", "Ladder inspected?", "Comments"]
        assert [item.kind for item in items] == ["yesno", "yesno", "text"]

    def test_crlf_and_trailing_space_after_question_mark(self):
        items = parse_checklist_text("Guard rails fitted?   \r\nSignage")

        assert items[0].label == "Guard rails fitted?"
        assert items[0].kind == "yesno"
        assert items[1].kind == "text"

    def test_empty_and_blank_input(self):
        assert parse_checklist_text("") == []
        assert parse_checklist_text(None) == []
        assert parse_checklist_text("  \n \n•  ") == []

    def test_ids_follow_surviving_lines(self):
        items = parse_checklist_text("\n\nFirst\n\n\nSecond?\n")

        assert [item.item_id for item in items] == ["q1", "q2"]
