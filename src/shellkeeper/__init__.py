"""Shellkeeper: conversational agent with memory and a safe command gateway."""

__version__ = "0.1.0"
