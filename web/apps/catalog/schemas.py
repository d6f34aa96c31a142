from typing import Literal

from pydantic import BaseModel, Field


class StockUpdateDTO(BaseModel):
    """Stand-alone stock adjustment; ``subtract`` never goes below zero."""

    quantity: int = Field(ge=0)
    operation: Literal["set", "add", "subtract"] = "set"
