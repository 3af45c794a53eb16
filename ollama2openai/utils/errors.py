"""
OpenAI 兼容的错误类型

所有错误响应统一为 {"error": {"message": ..., "type": ..., "code": ...}}
"""
from typing import Any, Dict, Optional

# 错误类型
TYPE_INVALID_REQUEST = "invalid_request_error"
TYPE_AUTHENTICATION = "authentication_error"
TYPE_NOT_FOUND = "not_found_error"
TYPE_RATE_LIMIT = "rate_limit_error"
TYPE_SERVER = "server_error"
TYPE_TIMEOUT = "timeout_error"


class APIError(Exception):
    """携带 HTTP 状态码的结构化 API 错误"""

    def __init__(
        self,
        code: str,
        message: str,
        type: str = TYPE_SERVER,
        status_code: int = 500,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.type = type
        self.status_code = status_code
        self.headers = headers

    def with_message(self, message: str) -> "APIError":
        """返回替换了 message 的副本，预定义错误本身不被修改"""
        return APIError(
            code=self.code,
            message=message,
            type=self.type,
            status_code=self.status_code,
            headers=self.headers,
        )

    def to_dict(self) -> Dict[str, Any]:
        detail: Dict[str, Any] = {"message": self.message, "type": self.type}
        if self.code:
            detail["code"] = self.code
        return {"error": detail}

    def __repr__(self) -> str:
        return f"APIError(code={self.code!r}, status_code={self.status_code}, message={self.message!r})"


# 预定义错误
ErrInvalidRequest = APIError("invalid_request", "Invalid request", TYPE_INVALID_REQUEST, 400)
ErrMissingAPIKey = APIError(
    "missing_api_key", "Missing API key", TYPE_AUTHENTICATION, 401,
    headers={"WWW-Authenticate": "Bearer"},
)
ErrInvalidAPIKey = APIError("invalid_api_key", "Invalid API key", TYPE_AUTHENTICATION, 403)
ErrModelNotFound = APIError("model_not_found", "Model not found", TYPE_NOT_FOUND, 404)
ErrMethodNotAllowed = APIError("method_not_allowed", "Method not allowed", TYPE_INVALID_REQUEST, 405)
ErrInternalServer = APIError("internal_server_error", "Internal server error", TYPE_SERVER, 500)
ErrOllamaConnection = APIError("ollama_connection_error", "Failed to connect to Ollama", TYPE_SERVER, 503)
ErrRequestTimeout = APIError("request_timeout", "Request timeout", TYPE_TIMEOUT, 504)


def error_type_for_status(status_code: int) -> str:
    """根据 HTTP 状态码推断错误类型"""
    if status_code in (400, 405, 422):
        return TYPE_INVALID_REQUEST
    if status_code in (401, 403):
        return TYPE_AUTHENTICATION
    if status_code == 404:
        return TYPE_NOT_FOUND
    if status_code == 429:
        return TYPE_RATE_LIMIT
    if status_code == 504:
        return TYPE_TIMEOUT
    return TYPE_SERVER


def error_for_status(status_code: int, message: str) -> APIError:
    """为任意状态码构造错误，用于转换框架抛出的 HTTPException"""
    return APIError("error", message, error_type_for_status(status_code), status_code)
