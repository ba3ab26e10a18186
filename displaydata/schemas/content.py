from pydantic import BaseModel, ConfigDict, Field
from typing import Literal


class ContentItemCreate(BaseModel):
    title: str = Field(min_length=1)
    type: str = Field(min_length=1)


class ContentItem(BaseModel):
    id: str
    title: str
    type: str
    status: Literal["draft", "active", "archived"] = "draft"
    created_at: str = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True)
