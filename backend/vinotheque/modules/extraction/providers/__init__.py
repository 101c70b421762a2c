"""Vinotheque provider adapters.

One adapter per AI vendor, all behind the same contract:
  ProviderAdapter.extract(chunks) -> raw product record (dict)

  openai:    Chat Completions, JSON object output
  anthropic: Messages API, JSON parsed from text
  google:    Gemini via google-genai, JSON mime type
"""
