"""
LLM-based expense extraction supporting multiple providers (OpenAI-compatible, Anthropic).

Every call returns an ExtractionOutcome; nothing raises to the caller.
"""

import json
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .categorization import CATEGORIES, normalize_category
from .config import LLMConfig, LLMProvider
from .models import DecodedImage, ParsedExpense, MAX_DESCRIPTION_LENGTH
from .parsers import parse_amount

logger = logging.getLogger(__name__)

MAX_TEXT_CHARS = 12000
DEFAULT_DESCRIPTION = "Uploaded receipt"

SYSTEM_PROMPT = (
    "You are an assistant that extracts structured expense data from receipts, "
    "invoices, and CSV text. Always respond with valid JSON: "
    '{"description": string, "amount": number, "category": string, "date": string}. '
    "Amount must be just a number without currency symbols. "
    f"Category must be one of: {', '.join(CATEGORIES)}. "
    'If information is missing, infer a short description and default category "Other".'
)

IMAGE_PROMPT = (
    "Analyze this receipt image and return JSON with description, amount, "
    "category, and date (if present)."
)

TEXT_PROMPT = """Extract the total amount, merchant/description, category, and date if available. Respond with JSON.

Content:
{content}"""


class ExtractionStatus(str, Enum):
    """How an extraction request ended."""
    OK = "ok"
    NOT_CONFIGURED = "not_configured"
    EMPTY_INPUT = "empty_input"
    TRANSPORT_FAILURE = "transport_failure"
    MALFORMED_RESPONSE = "malformed_response"


@dataclass
class ExtractionOutcome:
    status: ExtractionStatus
    expense: Optional[ParsedExpense] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == ExtractionStatus.OK


@dataclass
class ExtractionRequest:
    """Provider-neutral request: instruction text, optionally with an image."""
    system: str
    prompt: str
    image: Optional[DecodedImage] = None


class MalformedResponseError(ValueError):
    """The model answered, but not with a usable expense object."""


def build_text_request(text: str) -> ExtractionRequest:
    return ExtractionRequest(SYSTEM_PROMPT, TEXT_PROMPT.format(content=text[:MAX_TEXT_CHARS]))


def build_image_request(image: DecodedImage) -> ExtractionRequest:
    return ExtractionRequest(SYSTEM_PROMPT, IMAGE_PROMPT, image=image)


def strip_code_fences(response_text: str) -> str:
    """Remove a markdown code block wrapped around a JSON answer."""
    response_text = response_text.strip()
    if not response_text.startswith("```"):
        return response_text

    lines = response_text.split("\n")
    json_lines = []
    in_code = False
    for line in lines:
        if line.strip().startswith("```"):
            in_code = not in_code
            # Single-line fence: ```{"a": 1}```
            rest = line.strip().strip("`")
            if rest.startswith("json"):
                rest = rest[4:]
            if rest.strip():
                json_lines.append(rest)
            continue
        if in_code:
            json_lines.append(line)
    return "\n".join(json_lines).strip()


def coerce_amount(value) -> float:
    """
    Coerce the model's amount to a positive float.

    Raises:
        MalformedResponseError: missing, non-numeric, non-finite or not positive
    """
    if isinstance(value, bool) or value is None:
        raise MalformedResponseError(f"Invalid amount: {value!r}")
    if isinstance(value, (int, float)):
        amount = float(value)
    elif isinstance(value, str):
        amount = parse_amount(value)
        if amount is None:
            raise MalformedResponseError(f"Amount is not numeric: {value!r}")
    else:
        raise MalformedResponseError(f"Invalid amount: {value!r}")

    if not math.isfinite(amount) or amount <= 0:
        raise MalformedResponseError(f"Amount must be positive: {value!r}")
    return amount


def parse_response(response_text: str) -> ParsedExpense:
    """
    Validate the raw model answer and build a ParsedExpense from it.

    Raises:
        MalformedResponseError: not JSON, not an object, or no usable amount
    """
    try:
        result = json.loads(strip_code_fences(response_text or ""))
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Response is not JSON: {e}") from e
    if not isinstance(result, dict):
        raise MalformedResponseError("Response is not a JSON object")

    amount = coerce_amount(result.get("amount"))

    description = result.get("description")
    description = description.strip() if isinstance(description, str) else ""
    description = (description or DEFAULT_DESCRIPTION)[:MAX_DESCRIPTION_LENGTH]

    date = result.get("date")
    date = date.strip() if isinstance(date, str) and date.strip() else None

    return ParsedExpense(
        description=description,
        amount=amount,
        category=normalize_category(result.get("category")),
        date=date,
    )


def _call_openai(client, config: LLMConfig, request: ExtractionRequest) -> str:
    """Call an OpenAI-compatible chat completions API."""
    if request.image is not None:
        content = [
            {"type": "text", "text": request.prompt},
            {"type": "image_url", "image_url": {"url": request.image.data_url}},
        ]
    else:
        content = request.prompt

    response = client.chat.completions.create(
        model=config.resolved_model,
        messages=[
            {"role": "system", "content": request.system},
            {"role": "user", "content": content},
        ],
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )
    text = response.choices[0].message.content
    if not text:
        raise RuntimeError("No response from LLM while extracting expense details")
    return text.strip()


def _call_anthropic(client, config: LLMConfig, request: ExtractionRequest) -> str:
    """Call Anthropic messages API."""
    if request.image is not None:
        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": request.image.mime_type,
                    "data": request.image.base64,
                },
            },
            {"type": "text", "text": request.prompt},
        ]
    else:
        content = request.prompt

    response = client.messages.create(
        model=config.resolved_model,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        system=request.system,
        messages=[{"role": "user", "content": content}],
    )
    text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
    if not text:
        raise RuntimeError("No response from LLM while extracting expense details")
    return text.strip()


class ExpenseExtractor:
    """Best-effort structured extraction through an external model."""

    def __init__(self, config: Optional[LLMConfig] = None,
                 complete: Optional[Callable[[ExtractionRequest], str]] = None):
        """
        Initialize the extractor.

        Args:
            config: LLM settings; None means unconfigured
            complete: Replaces the provider call, ``(ExtractionRequest) -> raw text``
        """
        self.config = config or LLMConfig.unconfigured()
        self._complete = complete
        self._client = None
        if not self.config.is_configured:
            logger.info("LLM API key not configured; expense extraction will use heuristics only")

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    def _get_client(self):
        """Get or create the provider client (lazy initialization)."""
        if self._client is None:
            if self.config.provider == LLMProvider.ANTHROPIC:
                import anthropic
                self._client = anthropic.Anthropic(
                    api_key=self.config.api_key,
                    base_url=self.config.base_url,
                    timeout=self.config.timeout,
                    max_retries=0,
                )
            else:
                import openai
                self._client = openai.OpenAI(
                    api_key=self.config.api_key,
                    base_url=self.config.base_url,
                    timeout=self.config.timeout,
                    max_retries=0,
                    default_headers=self.config.extra_headers or None,
                )
        return self._client

    def _send(self, request: ExtractionRequest) -> str:
        if self._complete is not None:
            return self._complete(request)
        if self.config.provider == LLMProvider.ANTHROPIC:
            return _call_anthropic(self._get_client(), self.config, request)
        return _call_openai(self._get_client(), self.config, request)

    def request(self, text: Optional[str] = None,
                image: Optional[DecodedImage] = None) -> ExtractionOutcome:
        """
        Ask the model for an expense from text or from an image.

        Returns:
            ExtractionOutcome; ``expense`` is set only when status is OK
        """
        if not self.config.is_configured:
            return ExtractionOutcome(ExtractionStatus.NOT_CONFIGURED)

        if image is not None:
            request = build_image_request(image)
        elif text and text.strip():
            request = build_text_request(text)
        else:
            return ExtractionOutcome(ExtractionStatus.EMPTY_INPUT)

        try:
            response_text = self._send(request)
        except Exception as e:
            logger.warning("LLM extraction failed: %s", e)
            return ExtractionOutcome(ExtractionStatus.TRANSPORT_FAILURE, detail=str(e))

        try:
            expense = parse_response(response_text)
        except MalformedResponseError as e:
            logger.warning("LLM returned an unusable response: %s", e)
            return ExtractionOutcome(ExtractionStatus.MALFORMED_RESPONSE, detail=str(e))

        return ExtractionOutcome(ExtractionStatus.OK, expense=expense)

    def extract_text(self, text: str) -> Optional[ParsedExpense]:
        return self.request(text=text).expense

    def extract_image(self, image: DecodedImage) -> Optional[ParsedExpense]:
        return self.request(image=image).expense
