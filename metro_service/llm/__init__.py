from metro_service.llm.client import (
  ChatReply,
  LlmClient,
  LlmError,
  OllamaLlmClient,
  GeminiLlmClient,
  extract_json_array,
  get_llm_client,
  parse_events,
)

__all__ = [
  "ChatReply",
  "LlmClient",
  "LlmError",
  "OllamaLlmClient",
  "GeminiLlmClient",
  "extract_json_array",
  "get_llm_client",
  "parse_events",
]
