"""ScheduleGenerator implementations: OpenRouter (OpenAI-compatible) and a deterministic fallback."""
