"""
Task orchestration core powered by LangGraph and Google Gemini.

This package drives a user request through a multi-phase pipeline:
clarify missing information, build an execution plan, run tools against the
plan, validate the outcome, and either finish or loop back. Users can pause
and resume a task at any phase boundary.
"""

__version__ = "0.1.0"
