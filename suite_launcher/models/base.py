"""Base model for immutable launcher data."""

from pydantic import BaseModel, ConfigDict


class Model(BaseModel):
    """Frozen model that rejects unknown fields."""

    model_config = ConfigDict(frozen=True, extra="forbid")
