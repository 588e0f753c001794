"""
Permission feature module.

Position-based access control: an account status gate, typed permission
records with scope tokens, and the engine that turns them into decisions
and query filters.
"""
