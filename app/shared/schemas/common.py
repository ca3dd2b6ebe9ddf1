# app/shared/schemas/common.py
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional
from datetime import datetime

class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python; accepts both on input"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

class BaseResponse(CamelModel):
    success: bool = True
    message: str = ""
    timestamp: datetime = Field(default_factory=datetime.utcnow)

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: Optional[str] = None
    details: Optional[List[Dict[str, Any]]] = None
