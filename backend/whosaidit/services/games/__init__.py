"""Game domain services: state machine and scoring.

This package contains the core game mechanics that HTTP routes and socket
handlers call into, keeping transport concerns separated from the rules.
"""

from .engine import GameEngine, AnswerOutcome, VoteOutcome, ReadyOutcome

__all__ = ['GameEngine', 'AnswerOutcome', 'VoteOutcome', 'ReadyOutcome']
