"""hexbot - streaming chat and completion bots for OpenAI-compatible APIs."""

__version__ = "0.3.0"
