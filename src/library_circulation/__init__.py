"""
Library circulation server.

Reservations, loans, fines and per-book copy counters over a transactional
store, exposed as FastMCP tools.
"""

__version__ = "0.1.0"
