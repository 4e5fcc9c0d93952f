"""Emergency (kill switch) flags."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EmergencyFlags(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    force_direct: bool = Field(False, alias="forceDirect")
    disable_go: bool = Field(False, alias="disableGo")

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)
