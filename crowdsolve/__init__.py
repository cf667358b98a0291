"""
CrowdSolve backend package.

A FastAPI service where users post local problems (optionally with an
image), propose solutions, upvote them and comment. Records live behind a
store abstraction (SQLAlchemy or in-memory) and images behind an asset
store abstraction (S3-compatible or in-memory).
"""
