"""Domain building blocks shared by the rental store.

Pure rules, the order workflow state machine, the base repository and
the frozen configuration dataclasses. Nothing here depends on FastAPI.
"""
