import fitz
import pytest

from pdf_knowledge.ingestion import PageRenderError, PyMuPdfPageRenderer


def _pdf(pages: int, width: float = 595, height: float = 842) -> bytes:
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=width, height=height)
        page.insert_text((72, 72), f"Page {i + 1}")
    data = doc.tobytes()
    doc.close()
    return data


def test_count_pages():
    assert PyMuPdfPageRenderer().count_pages(_pdf(3)) == 3


def test_render_returns_jpeg_within_bounds():
    renderer = PyMuPdfPageRenderer(scale=1.5, max_dimension=1000)
    image = renderer.render(_pdf(2, width=600, height=2400), 2)

    assert image[:2] == b"\xff\xd8"
    pix = fitz.Pixmap(image)
    assert max(pix.width, pix.height) <= 1001


@pytest.mark.parametrize("page_number", [0, 3])
def test_render_out_of_range(page_number):
    with pytest.raises(PageRenderError):
        PyMuPdfPageRenderer().render(_pdf(2), page_number)


def test_render_garbage_is_page_error():
    with pytest.raises(PageRenderError):
        PyMuPdfPageRenderer().render(b"definitely not a pdf", 1)
