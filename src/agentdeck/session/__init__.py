"""Session orchestration — one registry over local and remote backends.

:mod:`agentdeck.session.backend` holds the bookkeeping both backends share;
:mod:`agentdeck.session.registry` is the entry point for callers.
"""
