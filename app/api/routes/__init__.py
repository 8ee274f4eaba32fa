"""Route Modules — one file per resource.

Invariants:
    - Each module defines its own APIRouter with prefix and tags
    - API key enforced at router level, user/admin checks per route
"""
