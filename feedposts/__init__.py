"""
feedposts - fetches posts from Bluesky feed generators into a relational store.
"""

__version__ = "0.1.0"
