"""Small response envelopes shared across routers."""

from __future__ import annotations

from sqlmodel import SQLModel


class OkResponse(SQLModel):
    """Acknowledgement payload for mutations without a body."""

    ok: bool = True
