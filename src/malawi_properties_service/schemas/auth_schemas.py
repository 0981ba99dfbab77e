from typing import Optional

from pydantic import BaseModel


class AuthenticatedUser(BaseModel):
    """The auth user behind a validated bearer token."""

    id: str
    email: Optional[str] = None
    access_token: str
