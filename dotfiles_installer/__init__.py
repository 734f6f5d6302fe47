"""Dotfiles environment provisioning.

Core design goals:
- Idempotent installs (install only what is missing, unless forced)
- Destructive but complete symlink replacement
- Scoped scratch directories that never outlive their operation
- Rollback and cleanup on every failure or interrupt
- Centralized logging (text or JSON)
"""

__all__ = []
