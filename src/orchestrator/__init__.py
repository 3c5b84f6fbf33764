"""Command orchestration for StoreCommand.

This package turns natural-language commerce commands into typed action
plans and runs those plans against connected platforms.

Subpackages:
    models: Action and Interpretation models.
    nl_engine: LLM interpreter, pattern fallback and risk scoring.
    execution: Execution engine, handlers and result folding.
    scheduling: Automation schedule recommendation and pending runs.
"""
