"""Route chat completions to several LLM providers and title threads locally."""

__version__ = "0.1.0"
