"""
response_governance -- structural governance of generated assistant responses.

Validates generated text against a per-turn intent contract, repairs it with
at most one constrained rewrite, rolls enforcement out to a stable percentage
of users, and finalizes every outbound envelope into one canonical shape.
"""

__version__ = "0.1.0"
