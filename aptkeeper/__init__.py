"""aptkeeper: APT source reconciliation and package-lock arbitration.

Core design goals:
- Reversible edits (duplicates are commented with a marker, never deleted)
- Atomic per-file rewrites
- Backups strictly before mutation
- Never kill a lock holder without explicit consent
- Centralized logging plus structured events
"""

__all__ = []
