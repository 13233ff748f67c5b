"""
Main expense extraction orchestration.
"""

import logging
from typing import Callable, List, Optional, Tuple

from .config import LLMConfig
from .invoice import extract_from_text
from .llm import ExpenseExtractor
from .models import DecodedImage, ParsedExpense
from .ocr import (decode, pdf_to_text, ocr_image_to_text,
                  DEFAULT_OCR_LANGUAGE, DEFAULT_OCR_TIMEOUT)

logger = logging.getLogger(__name__)

Strategy = Tuple[str, Callable]


class ExtractionOrchestrator:
    """
    Runs an upload through the extraction tiers until one of them answers.

    Text uploads: LLM on text, then the invoice heuristic.
    Image uploads: LLM on the image, then OCR followed by the text tiers.
    """

    def __init__(self, config: Optional[LLMConfig] = None,
                 extractor: Optional[ExpenseExtractor] = None,
                 pdf_text: Optional[Callable[[bytes], str]] = None,
                 ocr: Optional[Callable[[bytes, str], Optional[str]]] = None,
                 ocr_language: str = DEFAULT_OCR_LANGUAGE,
                 ocr_timeout: float = DEFAULT_OCR_TIMEOUT):
        """
        Initialize the orchestrator.

        Args:
            config: LLM settings, used when no extractor is given
            extractor: Pre-built LLM extractor
            pdf_text: PDF text-layer extractor, ``(bytes) -> str``
            ocr: OCR engine, ``(bytes, language) -> text or None``
            ocr_language: Tesseract language hint
            ocr_timeout: Seconds allowed for one OCR call
        """
        self.extractor = extractor or ExpenseExtractor(config)
        self.pdf_text = pdf_text or self._default_pdf_text
        self.ocr = ocr or self._default_ocr
        self.ocr_language = ocr_language
        self.ocr_timeout = ocr_timeout

    def _default_ocr(self, data: bytes, lang: str) -> Optional[str]:
        return ocr_image_to_text(data, lang=lang, timeout=self.ocr_timeout)

    def _default_pdf_text(self, body: bytes) -> str:
        # Scanned pages go through the same OCR engine as image uploads
        return pdf_to_text(body, lang=self.ocr_language, timeout=self.ocr_timeout, ocr=self.ocr)

    def text_strategies(self) -> List[Strategy]:
        return [
            ("ai-text", self.extractor.extract_text),
            ("invoice-heuristic", extract_from_text),
        ]

    def image_strategies(self) -> List[Strategy]:
        return [
            ("ai-image", self.extractor.extract_image),
            ("ocr", self._extract_via_ocr),
        ]

    def _run(self, strategies: List[Strategy], payload) -> Tuple[Optional[ParsedExpense], Optional[str]]:
        """Try each strategy in order; the first non-None result wins."""
        for name, strategy in strategies:
            try:
                result = strategy(payload)
            except Exception as e:
                logger.warning("Extraction stage %s failed: %s", name, e)
                result = None
            if result is not None:
                logger.info("Expense extracted by %s", name)
                return result, name
            logger.debug("Extraction stage %s abstained", name)
        return None, None

    def _extract_via_ocr(self, image: DecodedImage) -> Optional[ParsedExpense]:
        text = self.ocr(image.data, self.ocr_language)
        if not text or not text.strip():
            return None
        result, _ = self._run(self.text_strategies(), text)
        return result

    def extract_with_source(self, body: bytes, mime_type: Optional[str],
                            file_name: Optional[str]) -> Tuple[Optional[ParsedExpense], Optional[str]]:
        """
        Extract an expense and report which stage produced it.

        Returns:
            Tuple of (expense or None, stage name or None)

        Raises:
            DecodeError: the upload cannot be read
        """
        payload = decode(body, mime_type, file_name, pdf_text=self.pdf_text)
        logger.debug("Decoded %s as %s", file_name or "upload", payload.kind)

        if isinstance(payload, DecodedImage):
            return self._run(self.image_strategies(), payload)
        return self._run(self.text_strategies(), payload.text)

    def extract_expense(self, body: bytes, mime_type: Optional[str],
                        file_name: Optional[str]) -> Optional[ParsedExpense]:
        """
        Extract an expense from an uploaded file.

        Returns:
            ParsedExpense, or None when every stage abstained

        Raises:
            DecodeError: the upload cannot be read
        """
        result, _ = self.extract_with_source(body, mime_type, file_name)
        return result


def extract_expense(body: bytes, mime_type: Optional[str],
                    file_name: Optional[str]) -> Optional[ParsedExpense]:
    """One-shot extraction with LLM settings taken from the environment."""
    return ExtractionOrchestrator(LLMConfig.from_env()).extract_expense(body, mime_type, file_name)
