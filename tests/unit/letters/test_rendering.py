import pytest

from modules.letters.rendering import count_pdf_pages, render_letter_pdf

pytestmark = pytest.mark.unit


class TestRenderLetterPdf:
    def test_short_letter_is_one_page(self):
        content, pages = render_letter_pdf("Dear Bob,\n\nPlease return my ladder.\n\nAlice")

        assert content.startswith(b"%PDF")
        assert pages == 1

    def test_long_letter_spans_pages(self):
        paragraph = "All work and no play makes Jack a dull boy. " * 40
        content, pages = render_letter_pdf("\n\n".join([paragraph] * 12))

        assert pages > 1
        assert count_pdf_pages(content) == pages

    def test_markup_characters_are_escaped(self):
        content, pages = render_letter_pdf("Terms <b>not</b> bold & safe")

        assert content.startswith(b"%PDF")
        assert pages == 1


class TestCountPdfPages:
    def test_counts_page_objects_not_page_tree(self):
        content = (
            b"%PDF-1.4\n1 0 obj << /Type /Pages /Kids [2 0 R 3 0 R] >>\n"
            b"2 0 obj << /Type /Page >>\n3 0 obj << /Type/Page >>\n"
        )
        assert count_pdf_pages(content) == 2

    def test_never_less_than_one(self):
        assert count_pdf_pages(b"not a pdf") == 1
