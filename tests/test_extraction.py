import asyncio
import json
from datetime import date

import httpx
import pytest

from conftest import dashscope_reply
from newsdesk.schemas.models import ExtractedNewsData, NewsType, Sentiment
from newsdesk.shared.clients import LLMServiceClient
from newsdesk.shared.errors import (
    EmptyModelContent,
    ModelOutputInvalid,
    ModelTimeout,
    UnparsableModelOutput,
    UpstreamModelError,
)
from newsdesk.shared.extraction import (
    ExtractionClient,
    parse_brace_slice,
    parse_model_output,
    parse_structured,
)


def _client(config, handler) -> ExtractionClient:
    llm = LLMServiceClient(config, transport=httpx.MockTransport(handler))
    return ExtractionClient(llm, config=config)


def _replying(content: str):
    return lambda request: dashscope_reply(content)


def test_fenced_reply_parses_like_plain_json(config, model_json):
    plain = asyncio.run(_client(config, _replying(model_json())).extract("text"))
    fenced = asyncio.run(_client(config, _replying(f"```json\n{model_json()}\n```")).extract("text"))

    assert fenced == plain
    assert plain.title == "丰田发布新款陆地巡洋舰"
    assert plain.type == NewsType.LAUNCH
    assert plain.sentiment == Sentiment.POSITIVE
    assert plain.tags == ["SUV", "launch"]


def test_reply_wrapped_in_prose(config, model_json):
    reply = f"Sure! Here is the JSON you asked for:\n{model_json()}\nLet me know if you need more."
    record = asyncio.run(_client(config, _replying(reply)).extract("text"))

    assert record.brand == "Toyota"


def test_reply_without_braces_is_model_output_invalid(config):
    with pytest.raises(ModelOutputInvalid) as exc:
        asyncio.run(_client(config, _replying("I cannot help with that.")).extract("text"))

    assert isinstance(exc.value, UnparsableModelOutput)
    assert exc.value.raw == "I cannot help with that."


def test_empty_content_is_distinct_error(config):
    with pytest.raises(EmptyModelContent):
        asyncio.run(_client(config, _replying("   ")).extract("text"))


def test_missing_choices_is_empty_content(config):
    client = _client(config, lambda request: httpx.Response(200, json={"output": {}}))
    with pytest.raises(EmptyModelContent):
        asyncio.run(client.extract("text"))


def test_non_2xx_carries_provider_message(config):
    def handler(request):
        return httpx.Response(429, json={"code": "Throttling", "message": "Requests rate limit exceeded"})

    with pytest.raises(UpstreamModelError) as exc:
        asyncio.run(_client(config, handler).extract("text"))

    assert exc.value.message == "Requests rate limit exceeded"
    assert exc.value.status_code == 429
    assert exc.value.code == "Throttling"
    assert not isinstance(exc.value, ModelTimeout)


def test_error_payload_with_200_status(config):
    def handler(request):
        return httpx.Response(200, json={"code": "InvalidApiKey", "message": "Invalid API-key provided."})

    with pytest.raises(UpstreamModelError) as exc:
        asyncio.run(_client(config, handler).extract("text"))
    assert "Invalid API-key" in exc.value.message


def test_timeout_is_distinct_kind(config):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ModelTimeout) as exc:
        asyncio.run(_client(config, handler).extract("text"))
    assert exc.value.kind == "model_timeout"


def test_connection_error_is_upstream_error(config):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamModelError) as exc:
        asyncio.run(_client(config, handler).extract("text"))
    assert exc.value.kind == "upstream_model_error"


def test_missing_api_key_fails_before_request(config):
    config.llm_api_key = None
    calls = []

    def handler(request):
        calls.append(request)
        return dashscope_reply("{}")

    with pytest.raises(UpstreamModelError):
        asyncio.run(_client(config, handler).extract("text"))
    assert calls == []


def test_request_shape(config, model_json):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return dashscope_reply(model_json())

    asyncio.run(_client(config, handler).extract("Article body", known_brands=["Toyota", "Kia"]))

    assert seen["url"] == "https://llm.test/api/v1/services/aigc/text-generation/generation"
    assert seen["auth"] == "Bearer sk-test-key"
    body = seen["body"]
    assert body["model"] == "qwen-plus"
    assert body["parameters"]["result_format"] == "message"
    system, user = body["input"]["messages"]
    assert user == {"role": "user", "content": "News Text: Article body"}
    assert "Toyota, Kia, Other" in system["content"]
    assert "Competitor Dynamics" in system["content"]
    assert "positive, neutral, negative" in system["content"]
    assert "ONLY the JSON" in system["content"]


def test_unknown_brand_preserved_by_default(config, model_json):
    record = asyncio.run(_client(config, _replying(model_json(brand="Zeekr"))).extract("text"))
    assert record.brand == "Zeekr"


def test_unknown_brand_mapped_to_other_when_requested(config, model_json):
    client = _client(config, _replying(model_json(brand="Zeekr")))
    record = asyncio.run(client.extract("text", brand_policy="other"))
    assert record.brand == "Other"


def test_known_brand_normalized_to_vocabulary(config, model_json):
    record = asyncio.run(_client(config, _replying(model_json(brand="byd"))).extract("text"))
    assert record.brand == "BYD"


def test_defaults_and_coercion(config):
    reply = json.dumps({"title": "Headline", "type": "Rumour", "sentiment": "Mixed", "tags": "EV, Dubai"})
    record = asyncio.run(_client(config, _replying(reply)).extract("text"))

    assert record.date == date.today().isoformat()
    assert record.type == NewsType.OTHER
    assert record.sentiment == Sentiment.NEUTRAL
    assert record.tags == ["EV", "Dubai"]
    assert record.brand == "Other"
    assert record.url == ""


def test_missing_title_is_invalid(config):
    reply = json.dumps({"summary": "no title here"})
    with pytest.raises(ModelOutputInvalid):
        asyncio.run(_client(config, _replying(reply)).extract("text"))


def test_parse_stages_are_independent():
    assert parse_structured('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_structured('prefix {"a": 1}') is None
    assert parse_brace_slice('prefix {"a": {"b": 2}} suffix') == {"a": {"b": 2}}
    assert parse_brace_slice("no braces") is None
    assert parse_brace_slice("} backwards {") is None
    assert parse_structured("[1, 2]") is None


def test_parse_model_output_raises_typed_error():
    with pytest.raises(UnparsableModelOutput):
        parse_model_output('{"title": "unterminated"')


def test_extracted_record_has_fixed_field_set(config, model_json):
    reply = model_json(extra_field="ignored", confidence=0.9)
    record = asyncio.run(_client(config, _replying(reply)).extract("text"))

    assert set(record.model_dump()) == set(ExtractedNewsData.model_fields)
