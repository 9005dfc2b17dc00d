"""
API routes package
"""
from app.api.routes import auth, policies, claims, users, integrations, health

__all__ = [
    "auth",
    "policies",
    "claims",
    "users",
    "integrations",
    "health",
]
