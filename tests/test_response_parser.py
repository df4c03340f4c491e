"""Tests for suggestion extraction from bot replies."""

from __future__ import annotations

import unittest

from proxychat.response_parser import parse_reply


class ParseReplyTests(unittest.TestCase):
    """Validate body/suggestion splitting."""

    def test_extracts_suggestions_in_order(self) -> None:
        parsed = parse_reply(
            "Try breathing. [Suggestion: Tell me more] [Suggestion:  Other tips ]"
        )
        self.assertEqual(parsed.body, "Try breathing.")
        self.assertEqual(parsed.suggestions, ["Tell me more", "Other tips"])

    def test_plain_text_has_no_suggestions(self) -> None:
        parsed = parse_reply("  Just an answer.  ")
        self.assertEqual(parsed.body, "Just an answer.")
        self.assertEqual(parsed.suggestions, [])

    def test_error_text_is_returned_verbatim(self) -> None:
        raw = "Error: quota exceeded [Suggestion: retry]"
        parsed = parse_reply(raw)
        self.assertEqual(parsed.body, raw)
        self.assertEqual(parsed.suggestions, [])

    def test_unmatched_bracket_stays_in_body(self) -> None:
        parsed = parse_reply("Look here [Suggestion: unterminated")
        self.assertEqual(parsed.body, "Look here [Suggestion: unterminated")
        self.assertEqual(parsed.suggestions, [])

    def test_reply_of_only_suggestions_has_empty_body(self) -> None:
        parsed = parse_reply("[Suggestion: A][Suggestion: B]")
        self.assertEqual(parsed.body, "")
        self.assertEqual(parsed.suggestions, ["A", "B"])

    def test_none_and_empty_input(self) -> None:
        self.assertEqual(parse_reply(None).body, "")
        self.assertEqual(parse_reply("").suggestions, [])


if __name__ == "__main__":
    unittest.main()
