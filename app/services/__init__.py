"""Services Layer — identity linking, tokens, API keys, SIWE verification and webhook dispatch.

Invariants:
    - Services take an AsyncSession from the caller and never open their own,
      except the webhook dispatcher, which runs after the response is sent

Design Decisions:
    - One service per concern for locality (ADR: no god objects)
"""
