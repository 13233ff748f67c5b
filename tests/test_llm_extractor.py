from __future__ import annotations

import pytest

from expense_extraction.core.config import LLMConfig
from expense_extraction.core.llm import (ExpenseExtractor, ExtractionStatus, MAX_TEXT_CHARS,
                                         MalformedResponseError, parse_response,
                                         strip_code_fences, _call_anthropic, _call_openai)
from expense_extraction.core.models import DecodedImage

UBER = {"description": "Uber", "amount": 23.10, "category": "Transportation", "date": "2024-03-01"}


def _image():
    return DecodedImage(data=b"img", base64="aW1n", mime_type="image/jpeg")


def test_unconfigured_extractor_abstains_without_calling(fake_completion):
    complete = fake_completion(UBER)
    extractor = ExpenseExtractor(LLMConfig.unconfigured(), complete=complete)

    outcome = extractor.request(text="Total 5.00")
    assert outcome.status == ExtractionStatus.NOT_CONFIGURED
    assert outcome.expense is None
    assert complete.requests == []


def test_empty_input(llm_config, fake_completion):
    extractor = ExpenseExtractor(llm_config, complete=fake_completion(UBER))
    assert extractor.request(text="  ").status == ExtractionStatus.EMPTY_INPUT
    assert extractor.request().status == ExtractionStatus.EMPTY_INPUT


def test_text_request_is_truncated(llm_config, fake_completion):
    complete = fake_completion(UBER)
    extractor = ExpenseExtractor(llm_config, complete=complete)

    text = "x" * (MAX_TEXT_CHARS + 500)
    assert extractor.extract_text(text) is not None

    request = complete.requests[0]
    assert request.image is None
    assert "x" * MAX_TEXT_CHARS in request.prompt
    assert "x" * (MAX_TEXT_CHARS + 1) not in request.prompt
    assert "JSON" in request.system


def test_image_request_is_multimodal(llm_config, fake_completion):
    complete = fake_completion(UBER)
    extractor = ExpenseExtractor(llm_config, complete=complete)

    expense = extractor.extract_image(_image())
    assert expense.to_dict() == UBER
    assert complete.requests[0].image.base64 == "aW1n"


def test_fenced_response_with_string_amount(llm_config, fake_completion):
    response = '```json\n{"description": "Dinner", "amount": "$1,250.50", "category": "food"}\n```'
    extractor = ExpenseExtractor(llm_config, complete=fake_completion(response))

    outcome = extractor.request(text="receipt")
    assert outcome.ok
    assert outcome.expense.amount == pytest.approx(1250.50)
    assert outcome.expense.category == "Food"
    assert outcome.expense.date is None


def test_missing_fields_get_defaults():
    expense = parse_response('{"amount": 9}')
    assert expense.description == "Uploaded receipt"
    assert expense.category == "Other"
    assert expense.amount == 9.0


def test_unknown_category_collapses_to_other():
    expense = parse_response('{"description": "Gift", "amount": 20, "category": "Presents"}')
    assert expense.category == "Other"


def test_long_description_is_truncated():
    expense = parse_response('{"description": "%s", "amount": 1}' % ("d" * 300))
    assert len(expense.description) == 200


@pytest.mark.parametrize(
    "response",
    [
        "Sorry, I cannot read this receipt.",
        "[1, 2, 3]",
        '{"description": "x"}',
        '{"description": "x", "amount": "n/a"}',
        '{"description": "x", "amount": 0}',
        '{"description": "x", "amount": -3}',
        '{"description": "x", "amount": true}',
    ],
)
def test_malformed_responses(llm_config, fake_completion, response):
    extractor = ExpenseExtractor(llm_config, complete=fake_completion(response))
    outcome = extractor.request(text="receipt")
    assert outcome.status == ExtractionStatus.MALFORMED_RESPONSE
    assert extractor.extract_text("receipt") is None


def test_parse_response_raises_on_non_json():
    with pytest.raises(MalformedResponseError):
        parse_response("not json")


def test_transport_failure_is_caught(llm_config, fake_completion):
    extractor = ExpenseExtractor(llm_config, complete=fake_completion(ConnectionError("timed out")))
    outcome = extractor.request(text="receipt")
    assert outcome.status == ExtractionStatus.TRANSPORT_FAILURE
    assert "timed out" in outcome.detail


@pytest.mark.parametrize(
    "raw,expected",
    [
        ('{"a": 1}', '{"a": 1}'),
        ('```json\n{"a": 1}\n```', '{"a": 1}'),
        ('```\n{"a": 1}\n```', '{"a": 1}'),
        ('```{"a": 1}```', '{"a": 1}'),
    ],
)
def test_strip_code_fences(raw, expected):
    assert strip_code_fences(raw) == expected


class _Namespace:
    def __init__(self, **kwargs):
        self.__dict__.update(kwargs)


class _FakeOpenAI:
    def __init__(self, content):
        self.calls = []
        self.chat = _Namespace(completions=_Namespace(create=self._create))
        self._content = content

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        message = _Namespace(content=self._content)
        return _Namespace(choices=[_Namespace(message=message)])


class _FakeAnthropic:
    def __init__(self, text):
        self.calls = []
        self.messages = _Namespace(create=self._create)
        self._text = text

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        return _Namespace(content=[_Namespace(type="text", text=self._text)])


def test_openai_image_message_shape(llm_config):
    from expense_extraction.core.llm import build_image_request

    client = _FakeOpenAI(' {"amount": 1} ')
    assert _call_openai(client, llm_config, build_image_request(_image())) == '{"amount": 1}'

    call = client.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["max_tokens"] == 500
    assert call["messages"][0]["role"] == "system"
    text_part, image_part = call["messages"][1]["content"]
    assert text_part["type"] == "text"
    assert image_part == {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,aW1n"}}


def test_openai_empty_response_raises(llm_config):
    from expense_extraction.core.llm import build_text_request

    with pytest.raises(RuntimeError):
        _call_openai(_FakeOpenAI(None), llm_config, build_text_request("Total 1"))


def test_anthropic_image_message_shape():
    from expense_extraction.core.llm import build_image_request

    config = LLMConfig(provider="anthropic", api_key="k", model="claude-test")
    client = _FakeAnthropic('{"amount": 2}')
    assert _call_anthropic(client, config, build_image_request(_image())) == '{"amount": 2}'

    call = client.calls[0]
    assert call["model"] == "claude-test"
    assert "JSON" in call["system"]
    image_part, text_part = call["messages"][0]["content"]
    assert image_part["source"] == {"type": "base64", "media_type": "image/jpeg", "data": "aW1n"}
    assert text_part["type"] == "text"


def test_extractor_uses_provider_client(monkeypatch):
    config = LLMConfig(provider="anthropic", api_key="k")
    extractor = ExpenseExtractor(config)
    client = _FakeAnthropic('{"description": "Pharmacy", "amount": 12.5, "category": "Healthcare"}')
    monkeypatch.setattr(extractor, "_get_client", lambda: client)

    expense = extractor.extract_text("CVS Pharmacy\nTotal 12.50")
    assert expense.category == "Healthcare"
    assert len(client.calls) == 1
