"""memman: keeps assistant instruction documents in sync and lean.

Reconciles a primary instruction document (CLAUDE.md) with its mirror
(AGENTS.md), captures corrections made during coding sessions, and splits a
monolithic document into selectively loaded rule files.
"""

__version__ = "0.3.0"
