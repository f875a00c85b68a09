"""
Wire schemas for the CRM OAuth and query endpoints.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenResponse(BaseModel):
    """Successful password-grant response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    instance_url: Optional[str] = None
    issued_at: Optional[str] = None
    token_type: Optional[str] = "Bearer"


class QueryResponse(BaseModel):
    """SOQL query result page."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    total_size: int = Field(default=0, alias="totalSize")
    done: bool = True
    records: List[Dict[str, Any]] = Field(default_factory=list)
    next_records_url: Optional[str] = Field(default=None, alias="nextRecordsUrl")
