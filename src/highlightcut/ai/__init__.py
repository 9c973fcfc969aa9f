"""LLM/VLM provider access and the signal scorers that depend on it."""
