"""Data models for facts returned by the memory service."""

from pydantic import AliasChoices, BaseModel, Field


class MemoryFact(BaseModel):
    """A single fact retrieved from the memory service."""

    id: str = Field(default="", validation_alias=AliasChoices("id", "uuid"))
    fact: str = Field(validation_alias=AliasChoices("fact", "memory", "content"))
    created_at: str = ""
