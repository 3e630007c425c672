"""Unit tests for text extraction."""
from unittest.mock import MagicMock, patch
from io import BytesIO

import PyPDF2
import pytest

from ragvault.core.errors import UnsupportedFormatError
from ragvault.kb.extraction import extract_text, get_extractor, normalize_text


class TestNormalize:
    def test_collapses_whitespace(self):
        assert normalize_text("a \t  b\r\n\r\n\r\n\r\nc  ") == "a b\n\nc"

    def test_nfc(self):
        assert normalize_text("e\u0301") == "\u00e9"


class TestExtractors:
    def test_plain_text(self):
        assert extract_text(b"Hello  world", "text/plain") == "Hello world"

    def test_utf8_bom_is_dropped(self):
        assert extract_text("\ufeffHi".encode("utf-8"), "text/plain") == "Hi"

    def test_latin1_fallback(self):
        assert extract_text("café".encode("latin-1"), "text/plain") == "café"

    def test_mime_parameters_are_ignored(self):
        assert get_extractor("text/plain; charset=utf-8") is not None

    def test_unknown_text_subtype_is_plain_text(self):
        assert extract_text(b"key: value", "text/x-yaml") == "key: value"

    def test_html_drops_scripts_and_styles(self):
        html = b"<html><head><style>p{}</style><script>alert(1)</script></head><body><p>Visible</p></body></html>"
        text = extract_text(html, "text/html")
        assert text == "Visible"

    def test_pdf_pages_joined(self):
        page1, page2 = MagicMock(), MagicMock()
        page1.extract_text.return_value = "First page"
        page2.extract_text.return_value = "Second page"
        with patch("ragvault.kb.extraction.PyPDF2.PdfReader") as mock_reader:
            mock_reader.return_value.pages = [page1, page2]
            text = extract_text(b"%PDF-1.4", "application/pdf")
        assert text == "First page\n\nSecond page"

    def test_pdf_without_text_layer_is_rejected(self):
        writer = PyPDF2.PdfWriter()
        writer.add_blank_page(width=200, height=200)
        buffer = BytesIO()
        writer.write(buffer)

        with pytest.raises(UnsupportedFormatError, match="no readable text"):
            extract_text(buffer.getvalue(), "application/pdf", "scan.pdf")


class TestFailures:
    def test_unsupported_type(self):
        with pytest.raises(UnsupportedFormatError):
            extract_text(b"\x89PNG", "image/png", "photo.png")

    def test_octet_stream_is_unsupported(self):
        with pytest.raises(UnsupportedFormatError):
            extract_text(b"\x00\x01", "application/octet-stream")

    def test_whitespace_only_document(self):
        with pytest.raises(UnsupportedFormatError, match="no readable text"):
            extract_text(b"   \n\t\n  ", "text/plain", "blank.txt")

    def test_corrupt_pdf(self):
        with pytest.raises(UnsupportedFormatError, match="Failed to extract text"):
            extract_text(b"not a pdf at all", "application/pdf", "broken.pdf")
