"""
Runtime package for the avatar relay server.

This package contains:
- API layer (FastAPI app factory + routes)
- Agents (stream orchestration, conversation turns, idle-stream reaper)
- Stores (in-memory chat sessions and stream state)
- Models (Pydantic schemas for sessions and HTTP requests)
"""
