"""
Views package for Inscription Reader.

Views render WorkflowState snapshots and forward user intents to the
SessionController. The view is dumb - all logic is handled by the controller.
"""

from .console_view import ConsoleView

__all__ = [
    'ConsoleView',
]
