"""
Success envelope shared by the route modules
"""
from typing import Any, Dict, Optional


def ok(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    """
    Build a success response body

    Args:
        data: Payload placed under "data"
        message: Human readable summary

    Returns:
        {"status": "ok", "message": ..., "data": ...}
    """
    body: Dict[str, Any] = {"status": "ok"}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body
