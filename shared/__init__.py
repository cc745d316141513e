"""
Shared infrastructure for the news gateway: configuration, logging,
security helpers, persistence and Redis access.
"""
