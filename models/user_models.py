"""
Caller identity as resolved from a session token
"""
from pydantic import BaseModel


class AuthUser(BaseModel):
    userId: str
    email: str = ""
    name: str = ""
