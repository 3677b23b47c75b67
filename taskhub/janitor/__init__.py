"""
Janitor module.
Purges expired entries from stores without native TTL eviction.
"""

from taskhub.janitor.main import Janitor, run

__all__ = ["Janitor", "run"]
