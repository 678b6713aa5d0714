from typing import List, Optional

from pydantic import BaseModel, field_validator


class ProviderShareIn(BaseModel):
    name: str
    percentage: float

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()

    @field_validator("percentage")
    @classmethod
    def percentage_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("percentage must be non-negative")
        return v


class ProviderCollectionsRequest(BaseModel):
    location_id: Optional[str] = None
    time_range: Optional[str] = None
    providers: List[ProviderShareIn]


class AIQueryRequest(BaseModel):
    query: str
    location_id: Optional[str] = None
    time_range: Optional[str] = None

    @field_validator("query")
    @classmethod
    def query_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("query cannot be empty")
        return v.strip()


class LedgerImportRequest(BaseModel):
    content: str
    location_id: Optional[str] = None
    replace: bool = True
