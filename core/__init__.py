"""
Live state core

This package holds the housekeeping state machinery:
- Room registry and day-boundary clock
- State machine: status derivation and allowed transitions
- State Store: guarded, atomic per-room mutations
- Event Log: append-only live feed history
- Broadcaster: fan-out to connected clients
- Action Processor: the single entry point for state changes
"""
