"""
Unit tests for token estimation and budget checks.
"""

from ai_story_gateway.core.token_counter import estimate_tokens, validate_token_limit


class TestEstimateTokens:

    def test_empty_text(self):
        """Test that empty text is zero tokens."""
        assert estimate_tokens("") == 0

    def test_blend_of_characters_and_words(self):
        """Test the character and word blend."""
        # 11 chars, 2 words: 11/4*0.7 + 2*0.3 = 1.925 + 0.6 = 2.525 -> 3
        assert estimate_tokens("hello world") == 3

    def test_rounds_up(self):
        """Test that estimates round up."""
        # 4 chars, 1 word: 0.7 + 0.3 = 1.0
        assert estimate_tokens("abcd") == 1

    def test_longer_text_estimates_more(self):
        """Test that longer text estimates more tokens."""
        assert estimate_tokens("word " * 100) > estimate_tokens("word " * 10)


class TestValidateTokenLimit:

    def test_within_budget(self):
        """Test a prompt within budget."""
        check = validate_token_limit("A short prompt", max_tokens=100)
        assert check.valid is True
        assert check.token_count == estimate_tokens("A short prompt")
        assert check.message is None

    def test_exact_budget_is_allowed(self):
        """Test that a prompt at the ceiling is allowed."""
        check = validate_token_limit("abcd", max_tokens=1)
        assert check.valid is True

    def test_over_budget_quotes_both_numbers(self):
        """Test that the over-budget message quotes both numbers."""
        text = "lorem ipsum " * 2000
        count = estimate_tokens(text)

        check = validate_token_limit(text, max_tokens=4000)

        assert check.valid is False
        assert check.token_count == count
        assert check.message == (
            f"Prompt is too long ({count} tokens). Maximum is 4000 tokens. "
            "Please shorten your input."
        )
