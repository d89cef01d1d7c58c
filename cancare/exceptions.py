"""
统一异常体系。

所有业务异常继承 BaseAppException，包含：
- type:        错误类型标识（validation_error / auth / not_found / conflict）
- code:        业务错误码（NOT_AUTHENTICATED / PATIENT_PROFILE_NOT_FOUND / ...）
- message:     人类可读的描述
- detail:      可选的附加信息（dict / list / None）
- http_status: HTTP 状态码

读操作失败不会走到这里（fail_soft 返回默认值），只有写操作和参数错误会 raise。
View 层只需 raise，exception_handler 统一捕获并格式化响应。
"""


class BaseAppException(Exception):
    """所有业务异常的基类。"""

    type = 'error'
    code = 'UNKNOWN_ERROR'
    http_status = 500

    def __init__(self, message, code=None, detail=None, http_status=None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.detail = detail
        super().__init__(message)


class ValidationError(BaseAppException):
    """输入验证失败，400。"""

    type = 'validation_error'
    code = 'VALIDATION_ERROR'
    http_status = 400


class NotAuthenticated(BaseAppException):
    """写操作需要调用者身份，但当前请求没有。401。"""

    type = 'auth'
    code = 'NOT_AUTHENTICATED'
    http_status = 401


class NotFoundError(BaseAppException):
    """写操作的目标文档不存在，404。"""

    type = 'not_found'
    code = 'NOT_FOUND'
    http_status = 404


class ConflictError(BaseAppException):
    """
    状态冲突，409。

    只在调用方显式传入 expected_status（compare-and-set）时出现；
    默认的 approve / reject 是 last-write-wins，不会抛这个。
    """

    type = 'conflict'
    code = 'STATUS_CONFLICT'
    http_status = 409
