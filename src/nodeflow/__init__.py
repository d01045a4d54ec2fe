"""Nodeflow — DAG workflow engine for text, HTTP and LLM nodes."""

__version__ = "0.1.0"
