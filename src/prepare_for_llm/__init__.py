"""Token-budgeted batching of project files into LLM prompts."""

__version__ = "0.1.0"
