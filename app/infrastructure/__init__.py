"""Infrastructure Layer — database sessions, outbound HTTP, logging sinks and rate limiting.

Invariants:
    - External calls wrapped with timeout and error mapping
    - Nothing here decides business rules
"""
