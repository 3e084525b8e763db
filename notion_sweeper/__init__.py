"""
Notion Sweeper

Polls Notion databases for changes since the last successful run and
reports new, updated and commented items.
"""

__version__ = "1.0.0"
