"""LINE chatbot backed by an OpenAI-compatible LM Studio server."""
