"""
Shared schema base
"""
from pydantic import BaseModel


class StrictModel(BaseModel):
    """Request body that rejects unknown fields"""

    class Config:
        extra = "forbid"
        str_strip_whitespace = True
