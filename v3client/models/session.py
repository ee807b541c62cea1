"""Stored v3 session."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class V3Session(BaseModel):
    """A resolved desktop session: the token_v2 cookie plus who and where."""

    model_config = ConfigDict(extra="ignore")

    token_v2: str
    user_id: str
    space_id: str
    user_email: str = ""
    user_name: str = ""
    space_name: str = ""
    extracted_at: str | None = None
