"""Tests for the context encoders."""

import pytest

from injection_defense.codec import (
    Context,
    EncodedOutput,
    encode,
    for_html,
    for_html_attribute,
    for_log,
)


LOG_PAYLOAD = "\n\rMY\r\nSPLITTED\n\rPAYLOAD\n\r" + "X" * 10000


class TestHtmlText:
    def test_escapes_five_reserved_characters(self):
        result = encode("<a href='x'>Tom & \"Jerry\"</a>", Context.HTML_TEXT)
        assert result.text == (
            "&lt;a href=&#39;x&#39;&gt;Tom &amp; &#34;Jerry&#34;&lt;/a&gt;"
        )

    def test_preserves_unreserved_text(self):
        text = "You user login is owasp-user01, ünïcode ok"
        assert for_html(text) == text

    def test_handles_empty_string(self):
        assert for_html("") == ""

    def test_ampersand_before_angle_brackets(self):
        assert for_html("&lt;script&gt;") == "&amp;lt;script&amp;gt;"

    def test_result_is_tagged_with_context(self):
        result = encode("x", Context.HTML_TEXT)
        assert isinstance(result, EncodedOutput)
        assert result.context is Context.HTML_TEXT


class TestNotIdempotent:
    """Re-encoding double-escapes whenever reserved characters are present."""

    @pytest.mark.parametrize("text", ["a < b", "Tom & Jerry", "it's", '"quoted"'])
    def test_twice_differs_from_once(self, text):
        once = encode(text, Context.HTML_TEXT)
        twice = encode(once.text, Context.HTML_TEXT)
        assert twice.text != once.text

    def test_twice_equals_once_without_reserved_characters(self):
        once = encode("plain text 123", Context.HTML_TEXT)
        assert encode(once.text, Context.HTML_TEXT).text == once.text


class TestHtmlAttribute:
    def test_escapes_quote_terminators(self):
        assert for_html_attribute('a"b\'c') == "a&#34;b&#39;c"

    def test_escapes_backtick_and_equals(self):
        assert for_html_attribute("x=`y`") == "x&#61;&#96;y&#96;"

    def test_escapes_everything_html_text_escapes(self):
        assert for_html_attribute("<&>") == "&lt;&amp;&gt;"


class TestLogLine:
    def test_replaces_crlf_with_literal_escapes(self):
        assert for_log("a\r\nb") == "a\\r\\nb"

    def test_payload_yields_single_line(self):
        result = for_log(LOG_PAYLOAD)
        assert "\n" not in result
        assert "\r" not in result
        assert len(result.splitlines()) == 1

    def test_payload_expected_prefix(self):
        result = for_log(LOG_PAYLOAD)
        assert result.startswith("\\n\\rMY\\r\\nSPLITTED\\n\\rPAYLOAD\\n\\rXXXX")

    def test_no_truncation(self):
        result = for_log(LOG_PAYLOAD)
        line_breaks = LOG_PAYLOAD.count("\n") + LOG_PAYLOAD.count("\r")
        assert len(result) == len(LOG_PAYLOAD) + line_breaks
        assert result.endswith("X" * 10000)

    def test_html_characters_untouched(self):
        assert for_log("<b>&</b>") == "<b>&</b>"

    def test_non_string_values_are_stringified(self):
        assert for_log(42) == "42"


class TestContext:
    def test_from_name(self):
        assert Context.from_name("log_line") is Context.LOG_LINE

    def test_from_name_accepts_dashes_and_case(self):
        assert Context.from_name("HTML-Attribute") is Context.HTML_ATTRIBUTE

    def test_from_name_unknown(self):
        with pytest.raises(ValueError, match="Unknown context"):
            Context.from_name("javascript")

    def test_encode_rejects_non_string(self):
        with pytest.raises(TypeError):
            encode(123, Context.HTML_TEXT)  # type: ignore[arg-type]


class TestEncodedOutput:
    def test_str_and_len(self):
        result = encode("<", Context.HTML_TEXT)
        assert str(result) == "&lt;"
        assert len(result) == 4

    def test_is_frozen(self):
        import dataclasses

        result = encode("x", Context.HTML_TEXT)
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.text = "<script>"  # type: ignore[misc]
