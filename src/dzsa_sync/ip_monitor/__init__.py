"""IP monitoring module for dzsa-sync.

Watches the public IP via periodic detection queries and notifies
a registered callback when it changes.
"""

from .monitor import IpWatcher

__all__ = ["IpWatcher"]
