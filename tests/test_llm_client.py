import asyncio
import json

import httpx
import pytest

from metro_service.llm import (
  GeminiLlmClient,
  LlmError,
  OllamaLlmClient,
  extract_json_array,
  get_llm_client,
  parse_events,
)


def run(coro):
  return asyncio.run(coro)


def gemini_answer(text, grounding=None):
  candidate = {"content": {"parts": [{"text": text}]}}
  if grounding is not None:
    candidate["groundingMetadata"] = {"groundingChunks": grounding}
  return {"candidates": [candidate]}


def test_extract_json_array_strips_prose_and_fences():
  assert extract_json_array('```json\n[{"a": 1}]\n```') == '[{"a": 1}]'
  assert extract_json_array("no array here") == "no array here"
  assert extract_json_array("") == ""


def test_parse_events_drops_nulls_and_bad_items():
  text = json.dumps(
    [
      {"name": "Good", "tags": None, "location": {"address": "1 St", "latitude": None, "longitude": -95.0}},
      {"description": "missing a name"},
      "not an object",
    ]
  )
  events = parse_events(text)
  assert [e.name for e in events] == ["Good"]
  assert events[0].tags == []
  assert events[0].location.latitude == 0.0


def test_parse_events_accepts_wrapped_objects():
  assert [e.name for e in parse_events('{"events": [{"name": "A"}]}')] == ["A"]
  assert [e.name for e in parse_events('{"suggestions": [{"name": "B"}]}')] == ["B"]


def test_parse_events_rejects_garbage():
  with pytest.raises(ValueError):
    parse_events("definitely not json")
  with pytest.raises(ValueError):
    parse_events('"just a string"')


def test_gemini_generate_text_with_search_tool():
  seen = {}

  def handler(request: httpx.Request) -> httpx.Response:
    seen["url"] = str(request.url)
    seen["body"] = json.loads(request.content)
    return httpx.Response(200, json=gemini_answer("[]"))

  client = GeminiLlmClient(api_key="secret", transport=httpx.MockTransport(handler))
  text = run(client.generate_text("find events", use_search=True))

  assert text == "[]"
  assert "gemini-3-flash-preview:generateContent" in seen["url"]
  assert "key=secret" in seen["url"]
  assert seen["body"]["tools"] == [{"googleSearch": {}}]
  assert seen["body"]["contents"][0]["parts"][0]["text"] == "find events"


def test_gemini_generate_json_sets_mime_type():
  seen = {}

  def handler(request: httpx.Request) -> httpx.Response:
    seen["body"] = json.loads(request.content)
    return httpx.Response(200, json=gemini_answer('{"latitude": 1.5, "longitude": 2.5}'))

  client = GeminiLlmClient(api_key="k", transport=httpx.MockTransport(handler))
  data = run(client.generate_json("where?"))

  assert data == {"latitude": 1.5, "longitude": 2.5}
  assert seen["body"]["generationConfig"] == {"responseMimeType": "application/json"}
  assert "tools" not in seen["body"]


def test_gemini_chat_collects_grounding_chunks():
  seen = {}
  grounding = [
    {"maps": {"uri": "https://maps.google.com/?cid=1", "title": "Hermann Park"}},
    {"web": {"uri": "https://example.com", "title": "Guide"}},
  ]

  def handler(request: httpx.Request) -> httpx.Response:
    seen["url"] = str(request.url)
    seen["body"] = json.loads(request.content)
    return httpx.Response(200, json=gemini_answer("Go to Hermann Park.", grounding))

  client = GeminiLlmClient(api_key="k", transport=httpx.MockTransport(handler))
  history = [{"role": "user", "parts": [{"text": "hi"}]}, {"role": "model", "parts": [{"text": "hello"}]}]
  reply = run(client.chat("You are a local expert.", history, "Parks?"))

  assert reply.text == "Go to Hermann Park."
  assert reply.grounding_chunks[0].maps["title"] == "Hermann Park"
  assert reply.grounding_chunks[1].web.uri == "https://example.com"
  assert "gemini-3-pro-preview" in seen["url"]
  assert seen["body"]["tools"] == [{"googleMaps": {}}]
  assert seen["body"]["contents"][-1] == {"role": "user", "parts": [{"text": "Parks?"}]}
  assert len(seen["body"]["contents"]) == 3


def test_gemini_http_error_becomes_llm_error():
  client = GeminiLlmClient(api_key="k", transport=httpx.MockTransport(lambda request: httpx.Response(429)))
  with pytest.raises(LlmError):
    run(client.generate_text("x"))


def test_ollama_generate_and_chat():
  calls = []

  def handler(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    calls.append((request.url.path, body))
    if request.url.path == "/api/chat":
      return httpx.Response(200, json={"message": {"role": "assistant", "content": "Try the zoo."}})
    if body.get("format") == "json":
      return httpx.Response(200, json={"response": '{"latitude": 3, "longitude": 4}'})
    return httpx.Response(200, json={"response": '[{"name": "Zoo Lights"}]'})

  client = OllamaLlmClient(base_url="http://ollama:11434/", model="llama3", transport=httpx.MockTransport(handler))

  assert run(client.generate_text("events")) == '[{"name": "Zoo Lights"}]'
  assert run(client.generate_json("geo")) == {"latitude": 3, "longitude": 4}
  reply = run(client.chat("system", [{"role": "model", "parts": [{"text": "earlier"}]}], "what now?"))

  assert reply.text == "Try the zoo."
  chat_body = calls[-1][1]
  assert [m["role"] for m in chat_body["messages"]] == ["system", "assistant", "user"]
  assert chat_body["messages"][1]["content"] == "earlier"
  assert calls[0][1]["stream"] is False


def test_ollama_invalid_json_raises():
  transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"response": "not json"}))
  client = OllamaLlmClient(transport=transport)
  with pytest.raises(LlmError):
    run(client.generate_json("geo"))


def test_get_llm_client_from_env(monkeypatch):
  for name in ("GEMINI_API_KEY", "GOOGLE_GEMINI_API_KEY", "API_KEY"):
    monkeypatch.delenv(name, raising=False)
  monkeypatch.setenv("AI_BACKEND", "gemini")
  with pytest.raises(RuntimeError):
    get_llm_client()

  monkeypatch.setenv("API_KEY", "abc")
  client = get_llm_client()
  assert isinstance(client, GeminiLlmClient) and client.api_key == "abc"

  monkeypatch.setenv("AI_BACKEND", "ollama")
  monkeypatch.setenv("OLLAMA_HOST", "http://box:1234")
  client = get_llm_client()
  assert isinstance(client, OllamaLlmClient) and client.base_url == "http://box:1234"


def test_parse_events_keeps_numeric_prices():
  text = json.dumps(
    [
      {"name": "Free Jazz", "price": 0, "priceLevel": 0, "location": {"address": "1 St"}},
      {"name": "Rodeo", "price": 25, "date": 20250620, "location": {"address": "2 St"}},
    ]
  )
  events = parse_events(text)
  assert [e.name for e in events] == ["Free Jazz", "Rodeo"]
  assert events[0].price == "0" and events[0].priceLevel == "0"
  assert events[1].price == "25" and events[1].date == "20250620"


def test_gemini_null_content_reads_as_empty_text():
  transport = httpx.MockTransport(
    lambda request: httpx.Response(200, json={"candidates": [{"content": None, "finishReason": "SAFETY"}]})
  )
  client = GeminiLlmClient(api_key="k", transport=transport)
  assert run(client.generate_text("x")) == ""
  assert run(client.generate_json("x")) is None
