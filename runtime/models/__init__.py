"""
Pydantic datamodels used by the avatar relay runtime.

Split into:
- session_models: ChatSession + ChatMessage + AvatarStreamInfo and their enums
- api_models: HTTP request/response schemas
"""
