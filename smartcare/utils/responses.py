"""Response envelope helpers: every endpoint answers {success, message?, data?, errors?}"""
from math import ceil
from typing import Any, Dict, List, Optional, Type
from pydantic import BaseModel


def success_response(data: Optional[Dict[str, Any]] = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def error_response(message: str, errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


def serialize(schema: Type[BaseModel], obj: Any) -> Dict[str, Any]:
    """Validate an ORM row through its read schema and dump it with wire names"""
    return schema.model_validate(obj).model_dump(by_alias=True, mode="json")


def pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "currentPage": page,
        "totalPages": ceil(total / limit) if limit else 0,
        "totalItems": total,
        "itemsPerPage": limit,
    }
