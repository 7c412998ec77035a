"""
Agents used by the avatar relay runtime.

- AvatarStreamOrchestrator: drives vendor avatar streams and tracks their state
- ConversationAgent: records a user turn, asks the LLM, lets the avatar speak
- StreamReaper: background thread closing streams left idle too long
"""
