import base64
import json

import httpx
import pytest

from errors import ModelError
from gemini import GeminiModel, ImageAttachment


def _model(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiModel(api_key="test-key", model="gemini-test", base_url="https://example.test/v1beta/", client=client)


def _answer(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}]}


@pytest.mark.asyncio
async def test_request_carries_prompt_image_and_key():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-goog-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_answer('{"ok": true}'))

    model = _model(handler)
    text = await model.generate("analyze this", ImageAttachment(data=b"\x89PNG", mime_type="image/png"))
    await model.aclose()

    assert text == '{"ok": true}'
    assert seen["url"] == "https://example.test/v1beta/models/gemini-test:generateContent"
    assert seen["key"] == "test-key"
    parts = seen["body"]["contents"][0]["parts"]
    assert parts[0] == {"text": "analyze this"}
    assert parts[1]["inline_data"]["mime_type"] == "image/png"
    assert base64.b64decode(parts[1]["inline_data"]["data"]) == b"\x89PNG"


@pytest.mark.asyncio
async def test_text_only_request_has_single_part():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=_answer("hi"))

    model = _model(handler)
    await model.generate("hello")
    assert bodies[0]["contents"][0]["parts"] == [{"text": "hello"}]


@pytest.mark.asyncio
async def test_error_status_raises_model_error():
    model = _model(lambda request: httpx.Response(429, json={"error": {"message": "quota"}}))
    with pytest.raises(ModelError):
        await model.generate("hello")


def test_multi_part_answers_are_joined():
    body = {"candidates": [{"content": {"parts": [{"text": "{\"a\":"}, {"text": " 1}"}]}}]}
    assert GeminiModel.extract_text(body) == '{"a": 1}'


@pytest.mark.parametrize("body", [
    {"promptFeedback": {"blockReason": "SAFETY"}},
    {"candidates": []},
    {"candidates": [{"content": {"parts": []}, "finishReason": "MAX_TOKENS"}]},
])
def test_unusable_answers_raise_model_error(body):
    with pytest.raises(ModelError):
        GeminiModel.extract_text(body)
