from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class GatewayModel(BaseModel):
    """
    Base for gateway response shapes.

    Fields the gateway adds in newer firmware are ignored, and missing
    fields fall back to their defaults, since the API is reverse-engineered.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
