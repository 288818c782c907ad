"""Tests for the image and long-text redaction pass."""

from session_lens.config import IMAGE_PLACEHOLDER, MAX_TEXT_LENGTH, TRUNCATION_MARKER
from session_lens.redaction import redact, strip_images, truncate_fields, truncate_text


class TestTruncateText:
    """Tests for text truncation."""

    def test_at_limit_is_unchanged(self):
        text = "a" * MAX_TEXT_LENGTH
        assert truncate_text(text) == text

    def test_over_limit(self):
        result = truncate_text("b" * 25_000)
        assert result == "b" * MAX_TEXT_LENGTH + TRUNCATION_MARKER
        assert len(result) == 10_000 + len("\n...(truncated)")


class TestStripImages:
    """Tests for inline image replacement."""

    def test_large_image_replaced(self):
        node = {"kind": "image", "value": "x" * 1001, "mimeType": "image/png"}
        assert strip_images(node) == {"kind": "image", "value": IMAGE_PLACEHOLDER, "mimeType": "image/png"}

    def test_small_image_kept(self):
        node = {"kind": "image", "value": "x" * 1000}
        assert strip_images(node) == node

    def test_nested_images(self):
        tree = {"message": {"parts": [{"text": "look"}, {"kind": "image", "value": "y" * 5000}]}}
        result = strip_images(tree)
        assert result["message"]["parts"][1]["value"] == IMAGE_PLACEHOLDER
        assert result["message"]["parts"][0] == {"text": "look"}

    def test_input_not_mutated(self):
        tree = [{"kind": "image", "value": "z" * 2000}]
        strip_images(tree)
        assert tree[0]["value"] == "z" * 2000

    def test_other_kinds_untouched(self):
        node = {"kind": "file", "value": "q" * 5000}
        assert strip_images(node) == node


class TestTruncateFields:
    """Tests for per-key truncation."""

    def test_only_named_keys(self):
        tree = {"text": "t" * 20_000, "other": "o" * 20_000}
        result = truncate_fields(tree, keys=("text",))
        assert result["text"].endswith(TRUNCATION_MARKER)
        assert result["other"] == "o" * 20_000

    def test_redact_combines_both(self):
        tree = {"content": "c" * 20_000, "image": {"kind": "image", "value": "i" * 2000}}
        result = redact(tree)
        assert len(result["content"]) == MAX_TEXT_LENGTH + len(TRUNCATION_MARKER)
        assert result["image"]["value"] == IMAGE_PLACEHOLDER
