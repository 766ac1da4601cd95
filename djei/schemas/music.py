"""
Pydantic schemas for the music catalog proxy.

Search, track and recommendation responses are passed through from the
catalog unchanged, so only the token response is modelled here. It keeps
the catalog's own snake_case keys, which the web player expects.
"""

from pydantic import BaseModel


class CatalogTokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
