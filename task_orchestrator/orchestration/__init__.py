"""
Orchestration for the Task Orchestrator.

This package contains the state machine engine, the phase nodes, the graph
definitions for each task type, and the orchestrator that drives them turn
by turn. Import submodules directly; nothing is re-exported here so that
the tools package can depend on the state definitions.
"""
