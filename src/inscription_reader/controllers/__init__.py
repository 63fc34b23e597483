# ============================================================================
# src/inscription_reader/controllers/__init__.py
"""
Controllers for Inscription Reader.

This package contains the controller that turns user intents into
backend calls and workflow state transitions.
"""

from .session_controller import SessionController

__all__ = [
    'SessionController',
]
