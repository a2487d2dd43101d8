"""Unit tests for language helpers."""

import pytest

from palimpsest.languages import minimal_tag, resolve_language, same_language


class TestMinimalTag:
    """Test reduction of tags to their minimal identifier."""

    @pytest.mark.parametrize(
        "tag, expected",
        [
            ("zh-Hans", "zh"),
            ("zh-Hant", "zh-Hant"),
            ("zh-Hant-TW", "zh-Hant"),
            ("en-US", "en"),
            ("en-GB", "en-GB"),
            ("pt_BR", "pt"),
            ("FR", "fr"),
        ],
    )
    def test_reductions(self, tag, expected):
        """Likely script and region subtags are dropped."""
        assert minimal_tag(tag) == expected

    def test_empty_tag(self):
        """An empty tag is rejected."""
        with pytest.raises(ValueError):
            minimal_tag("  ")


class TestResolveLanguage:
    """Test mapping user input to supported language codes."""

    def test_by_code_and_name(self):
        """Codes and English names are accepted in any case."""
        assert resolve_language("FR") == "fr"
        assert resolve_language("japanese") == "ja"
        assert resolve_language("Chinese (Traditional)") == "zh-Hant"

    def test_by_equivalent_tag(self):
        """Tags that reduce to a supported code resolve to it."""
        assert resolve_language("zh-CN") == "zh-Hans"
        assert resolve_language("en-US") == "en"

    def test_unknown(self):
        """Unsupported languages resolve to None."""
        assert resolve_language("Klingon") is None
        assert resolve_language("") is None

    def test_same_language(self):
        """Regional variants of the same language compare equal."""
        assert same_language("en", "en-US")
        assert not same_language("zh-Hans", "zh-Hant")
