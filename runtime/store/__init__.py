"""
Storage abstractions for the avatar relay runtime.

Includes:
- ChatSessionStore: in-memory chat sessions with per-session locking
- StreamRegistry: per-stream status, activity times and test-stream handles
"""
