from typing import Any, Optional


def success_response(data: Any = None, message: Optional[str] = None, **extra: Any) -> dict[str, Any]:
    """统一成功响应：{success, data?, message?, ...extra}"""
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body.update(extra)
    return body


def error_response(message: str, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message}
    body.update(extra)
    return body
