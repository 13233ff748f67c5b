"""
Format dispatch for uploads, plus the PDF text-layer and OCR capabilities it relies on.
"""

import base64
import io
import logging
from typing import Callable, Optional, Union

from .errors import DecodeError, ExtractionError
from .models import DecodedImage, DecodedText
from .utils import CSV_EXTS, PDF_EXTS, PDF_MIME_TYPE, IMAGE_MIME_PREFIX

logger = logging.getLogger(__name__)

DEFAULT_OCR_LANGUAGE = "eng"
DEFAULT_OCR_TIMEOUT = 30

OcrEngine = Callable[[bytes, str], Optional[str]]


def _lazy_import_ocr_deps():
    """Lazy import heavy OCR dependencies."""
    global pytesseract, PIL_Image, fitz
    import importlib
    if pytesseract is None:
        pytesseract = importlib.import_module("pytesseract")
    if PIL_Image is None:
        PIL_Image = importlib.import_module("PIL.Image")
    if fitz is None:
        fitz = importlib.import_module("fitz")  # pymupdf


# Initialize on first use
pytesseract = None
PIL_Image = None
fitz = None


def ocr_image_to_text(data: bytes, lang: str = DEFAULT_OCR_LANGUAGE,
                      timeout: Optional[float] = DEFAULT_OCR_TIMEOUT) -> Optional[str]:
    """
    OCR image bytes to text.

    Returns None instead of raising: a missing Tesseract binary, an
    unreadable image and a timeout all mean "no text".
    """
    try:
        if pytesseract is None or PIL_Image is None:
            _lazy_import_ocr_deps()
        img = PIL_Image.open(io.BytesIO(data))
        # Improve OCR: grayscale
        if img.mode != "L":
            img = img.convert("L")
        return pytesseract.image_to_string(img, lang=lang, timeout=timeout or 0)
    except Exception as e:
        logger.warning("OCR failed: %s", e)
        return None


def _ocr_pdf_page(page, lang: str = DEFAULT_OCR_LANGUAGE,
                  timeout: Optional[float] = DEFAULT_OCR_TIMEOUT,
                  ocr: Optional[OcrEngine] = None) -> str:
    """Rasterize a PDF page without a text layer and OCR it."""
    try:
        mat = fitz.Matrix(2, 2)
        pix = page.get_pixmap(matrix=mat, alpha=False)
        img_bytes = pix.tobytes("png")
    except Exception as e:
        logger.warning("Could not rasterize PDF page for OCR: %s", e)
        return ""
    if ocr is not None:
        try:
            return ocr(img_bytes, lang) or ""
        except Exception as e:
            logger.warning("OCR failed on PDF page: %s", e)
            return ""
    return ocr_image_to_text(img_bytes, lang=lang, timeout=timeout) or ""


def pdf_to_text(body: bytes, ocr_fallback: bool = True,
                lang: str = DEFAULT_OCR_LANGUAGE,
                timeout: Optional[float] = DEFAULT_OCR_TIMEOUT,
                ocr: Optional[OcrEngine] = None) -> str:
    """
    Extract the text layer of a PDF using PyMuPDF.

    Pages without any text (scans) are OCR'd when ``ocr_fallback`` is set.

    Args:
        body: Raw PDF bytes
        ocr_fallback: OCR pages that have no text layer
        lang: Tesseract language hint for those pages
        timeout: Seconds allowed for one page OCR
        ocr: OCR engine, ``(bytes, language) -> text or None``; Tesseract when omitted

    Raises:
        ExtractionError: the document cannot be opened or read
    """
    if fitz is None:
        _lazy_import_ocr_deps()

    try:
        doc = fitz.open(stream=body, filetype="pdf")
    except Exception as e:
        raise ExtractionError(f"Cannot open PDF: {e}") from e

    chunks = []
    try:
        for page in doc:
            text = page.get_text()
            if not text.strip() and ocr_fallback:
                logger.debug("PDF page %s has no text layer, running OCR", page.number)
                text = _ocr_pdf_page(page, lang=lang, timeout=timeout, ocr=ocr)
            chunks.append(text)
    except Exception as e:
        raise ExtractionError(f"Cannot read PDF: {e}") from e
    finally:
        doc.close()
    return "\n".join(chunks)


def decode_text_bytes(body: bytes) -> str:
    """Decode bytes as UTF-8, replacing invalid sequences and dropping a BOM."""
    return body.decode("utf-8-sig", errors="replace")


def _is_csv(mime_type: str, name: str) -> bool:
    return "csv" in mime_type or any(name.endswith(ext) for ext in CSV_EXTS)


def _is_pdf(mime_type: str, name: str) -> bool:
    return mime_type == PDF_MIME_TYPE or any(name.endswith(ext) for ext in PDF_EXTS)


def decode(body: bytes, mime_type: Optional[str], file_name: Optional[str],
           pdf_text: Callable[[bytes], str] = pdf_to_text) -> Union[DecodedText, DecodedImage]:
    """
    Turn uploaded bytes into text, or into an image payload.

    Rules are checked in order: CSV, PDF, image, then plain text as the
    catch-all.

    Args:
        body: Raw upload bytes
        mime_type: Declared MIME type (may be empty)
        file_name: Original file name (may be empty)
        pdf_text: PDF text-layer extractor, ``(bytes) -> str``

    Raises:
        DecodeError: the bytes cannot be converted at all
    """
    if not isinstance(body, (bytes, bytearray, memoryview)):
        raise DecodeError(f"Expected bytes, got {type(body).__name__}")
    body = bytes(body)
    mime_type = (mime_type or "").lower()
    name = (file_name or "").lower()

    if _is_csv(mime_type, name):
        return DecodedText(decode_text_bytes(body))

    if _is_pdf(mime_type, name):
        try:
            return DecodedText(pdf_text(body))
        except ExtractionError as e:
            raise DecodeError(str(e)) from e

    if mime_type.startswith(IMAGE_MIME_PREFIX):
        return DecodedImage(
            data=body,
            base64=base64.b64encode(body).decode("ascii"),
            mime_type=mime_type,
        )

    return DecodedText(decode_text_bytes(body))
