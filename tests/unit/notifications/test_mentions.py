"""Tests for @mention parsing."""

import pytest

from taskboard.notifications.mentions import parse_mentions


class TestParseMentions:
    """Tests for parse_mentions()."""

    def test_single_mention(self):
        assert parse_mentions("Hey @bob, check this out") == ["bob"]

    def test_repeated_mention_returned_once(self):
        assert parse_mentions("@bob @bob and again @bob") == ["bob"]

    def test_keeps_first_seen_order(self):
        assert parse_mentions("@carol then @alice then @bob") == ["carol", "alice", "bob"]

    def test_lowercases_and_dedupes_across_case(self):
        assert parse_mentions("@Bob and @BOB and @bob") == ["bob"]

    def test_all_is_returned_as_plain_handle(self):
        assert parse_mentions("@all please review") == ["all"]

    def test_handles_may_contain_dash_and_underscore(self):
        assert parse_mentions("ping @code-reviewer and @qa_bot") == ["code-reviewer", "qa_bot"]

    def test_trailing_punctuation_ends_handle(self):
        assert parse_mentions("thanks @bob! and @carol.") == ["bob", "carol"]

    def test_mid_word_at_matches(self):
        assert parse_mentions("mail foo@bar now") == ["bar"]

    def test_non_ascii_letters_end_handle(self):
        assert parse_mentions("hola @josé") == ["jos"]

    @pytest.mark.parametrize("text", ["", "no mentions here", "just an @ sign", "@"])
    def test_no_mentions(self, text):
        assert parse_mentions(text) == []
