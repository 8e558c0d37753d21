import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from metro_service.models import EventRecommendation, GroundingChunk

logger = logging.getLogger("metro_service")

DEFAULT_GEMINI_MODEL = "gemini-3-flash-preview"
DEFAULT_GEMINI_CHAT_MODEL = "gemini-3-pro-preview"


class LlmError(RuntimeError):
  """Raised when the backend cannot be reached or answers with garbage."""


@dataclass
class ChatReply:
  text: str
  grounding_chunks: List[GroundingChunk] = field(default_factory=list)


def extract_json_array(text: str) -> str:
  """Trim prose around a JSON array, keeping the first '[' through the last ']'."""
  clean = (text or "").strip()
  start = clean.find("[")
  end = clean.rfind("]")
  if start != -1 and end != -1:
    clean = clean[start : end + 1]
  return clean


def parse_events(text: str) -> List[EventRecommendation]:
  """Decode a model answer into events; items that do not validate are skipped."""
  data = json.loads(extract_json_array(text))
  if isinstance(data, dict):
    data = data.get("events") or data.get("suggestions") or []
  if not isinstance(data, list):
    raise ValueError("expected a JSON array of events")
  events: List[EventRecommendation] = []
  for idx, item in enumerate(data):
    if not isinstance(item, dict):
      continue
    # models sometimes answer with null for list/string fields
    cleaned = {key: value for key, value in item.items() if value is not None}
    if isinstance(cleaned.get("location"), dict):
      cleaned["location"] = {key: value for key, value in cleaned["location"].items() if value is not None}
    try:
      events.append(EventRecommendation(**cleaned))
    except ValidationError as exc:
      logger.warning("Dropping malformed event %s from model output: %s", idx, exc.errors()[:1])
  return events


def _history_text(entry: Dict[str, Any]) -> str:
  parts = entry.get("parts") or []
  return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class LlmClient(ABC):
  @abstractmethod
  async def generate_text(self, prompt: str, use_search: bool = False) -> str:
    raise NotImplementedError

  @abstractmethod
  async def generate_json(self, prompt: str) -> Any:
    raise NotImplementedError

  @abstractmethod
  async def chat(self, system_instruction: str, history: List[Dict[str, Any]], message: str) -> ChatReply:
    raise NotImplementedError


class OllamaLlmClient(LlmClient):
  def __init__(
    self,
    base_url: str = "http://localhost:11434",
    model: str = "llama3",
    transport: Optional[httpx.AsyncBaseTransport] = None,
  ) -> None:
    self.base_url = base_url.rstrip("/")
    self.model = model
    self.transport = transport

  async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    try:
      async with httpx.AsyncClient(timeout=60.0, transport=self.transport) as client:
        resp = await client.post(f"{self.base_url}{path}", json=payload)
        resp.raise_for_status()
        return resp.json()
    except (httpx.HTTPError, ValueError) as exc:
      raise LlmError(f"Ollama request to {path} failed: {exc}") from exc

  async def generate_text(self, prompt: str, use_search: bool = False) -> str:
    # no search grounding locally; the prompt alone has to do
    data = await self._post("/api/generate", {"model": self.model, "prompt": prompt, "stream": False})
    return data.get("response") or ""

  async def generate_json(self, prompt: str) -> Any:
    data = await self._post(
      "/api/generate",
      {"model": self.model, "prompt": prompt, "stream": False, "format": "json"},
    )
    try:
      return json.loads(data.get("response") or "null")
    except ValueError as exc:
      raise LlmError(f"Ollama returned invalid JSON: {exc}") from exc

  async def chat(self, system_instruction: str, history: List[Dict[str, Any]], message: str) -> ChatReply:
    messages = [{"role": "system", "content": system_instruction}]
    for entry in history:
      role = "assistant" if entry.get("role") == "model" else "user"
      messages.append({"role": role, "content": _history_text(entry)})
    messages.append({"role": "user", "content": message})
    data = await self._post("/api/chat", {"model": self.model, "messages": messages, "stream": False})
    text = (data.get("message") or {}).get("content") or ""
    return ChatReply(text=text)


class GeminiLlmClient(LlmClient):
  def __init__(
    self,
    api_key: str,
    model: str = DEFAULT_GEMINI_MODEL,
    chat_model: str = DEFAULT_GEMINI_CHAT_MODEL,
    transport: Optional[httpx.AsyncBaseTransport] = None,
  ) -> None:
    self.api_key = api_key
    self.model = model
    self.chat_model = chat_model
    self.transport = transport
    self.base_url = "https://generativelanguage.googleapis.com/v1beta/models"

  async def _generate(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    url = f"{self.base_url}/{model}:generateContent"
    try:
      async with httpx.AsyncClient(timeout=45.0, transport=self.transport) as client:
        resp = await client.post(url, params={"key": self.api_key}, json=payload)
        resp.raise_for_status()
        return resp.json()
    except (httpx.HTTPError, ValueError) as exc:
      raise LlmError(f"Gemini request failed: {exc}") from exc

  @staticmethod
  def _candidate(data: Dict[str, Any]) -> Dict[str, Any]:
    candidates = data.get("candidates") or [{}]
    return candidates[0] if isinstance(candidates[0], dict) else {}

  @classmethod
  def _text(cls, data: Dict[str, Any]) -> str:
    parts = (cls._candidate(data).get("content") or {}).get("parts") or []
    text = ""
    for part in parts:
      if isinstance(part, dict) and "text" in part:
        text += part["text"]
    return text

  async def generate_text(self, prompt: str, use_search: bool = False) -> str:
    payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
    if use_search:
      payload["tools"] = [{"googleSearch": {}}]
    data = await self._generate(self.model, payload)
    return self._text(data)

  async def generate_json(self, prompt: str) -> Any:
    payload = {
      "contents": [{"role": "user", "parts": [{"text": prompt}]}],
      "generationConfig": {"responseMimeType": "application/json"},
    }
    data = await self._generate(self.model, payload)
    try:
      return json.loads(self._text(data) or "null")
    except ValueError as exc:
      raise LlmError(f"Gemini returned invalid JSON: {exc}") from exc

  async def chat(self, system_instruction: str, history: List[Dict[str, Any]], message: str) -> ChatReply:
    payload = {
      "systemInstruction": {"parts": [{"text": system_instruction}]},
      "contents": list(history) + [{"role": "user", "parts": [{"text": message}]}],
      "tools": [{"googleMaps": {}}],
    }
    data = await self._generate(self.chat_model, payload)
    raw_chunks = (self._candidate(data).get("groundingMetadata") or {}).get("groundingChunks") or []
    chunks: List[GroundingChunk] = []
    for raw in raw_chunks:
      try:
        chunks.append(GroundingChunk(**raw))
      except (TypeError, ValidationError):
        continue
    return ChatReply(text=self._text(data), grounding_chunks=chunks)


def get_llm_client() -> LlmClient:
  backend = os.getenv("AI_BACKEND", "gemini").lower()
  if backend in ("gemini", "google"):
    token = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_GEMINI_API_KEY") or os.getenv("API_KEY")
    if not token:
      raise RuntimeError("GEMINI_API_KEY is required for Gemini backend")
    return GeminiLlmClient(
      api_key=token,
      model=os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
      chat_model=os.getenv("GEMINI_CHAT_MODEL", DEFAULT_GEMINI_CHAT_MODEL),
    )

  model = os.getenv("OLLAMA_MODEL", "llama3")
  host = os.getenv("OLLAMA_HOST", "http://localhost:11434")
  return OllamaLlmClient(base_url=host, model=model)
