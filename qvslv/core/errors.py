# qvslv/core/errors.py
"""
模块职能：认证服务的错误类型。

每个错误自带 HTTP 状态码与 code，由 main.py 的异常处理器统一序列化为
{"error": ..., "code": ...[, "field"][, "reason"]}。

- ValidationError(field, reason)  400：缺字段 / 邮箱格式 / 弱口令 / 专业不合法 / 长度
- ConflictError(field)            400：email 或 username 已被占用
- AuthenticationError             401：凭据无效（统一文案，避免账号枚举）
- AuthorizationError              403：账号被禁用
- TokenError(reason)              401：expired / malformed（仅用于日志区分，对外同为 401）
- NotFoundError                   404：内部使用，不直接暴露给客户端
- InternalError                   500：存储不可用等意外错误（对外不带细节）
"""
from typing import Optional


class AuthServiceError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(AuthServiceError):
    status_code = 400
    code = "validation_error"

    # reason: missing_fields / invalid_email / weak_password / invalid_specialization / length / invalid_payload
    def __init__(self, reason: str, field: Optional[str] = None, message: Optional[str] = None):
        super().__init__(message or "Invalid request")
        self.reason = reason
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["reason"] = self.reason
        if self.field:
            data["field"] = self.field
        return data


class ConflictError(AuthServiceError):
    status_code = 400
    code = "conflict"

    def __init__(self, field: str):
        super().__init__(f"{field} already in use")
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["field"] = self.field
        return data


class AuthenticationError(AuthServiceError):
    status_code = 401
    code = "authentication_failed"

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class AuthorizationError(AuthServiceError):
    status_code = 403
    code = "account_disabled"

    def __init__(self, message: str = "Account disabled"):
        super().__init__(message)


class TokenError(AuthServiceError):
    status_code = 401
    code = "invalid_token"

    def __init__(self, reason: str):
        # 对外文案不区分 expired / malformed
        super().__init__("Invalid or expired token")
        self.reason = reason


class NotFoundError(AuthServiceError):
    status_code = 404
    code = "not_found"


class InternalError(AuthServiceError):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
