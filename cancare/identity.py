"""
调用者身份。

services 只通过 BaseIdentityProvider.current_user_id() 拿「当前用户」，
不关心身份来自 Django 登录用户、请求头还是测试里写死的值。
登录 / 注册流程不在这一层。
"""

from abc import ABC, abstractmethod

from django.conf import settings


class BaseIdentityProvider(ABC):

    @abstractmethod
    def current_user_id(self) -> str | None:
        """返回当前调用者 uid；未登录返回 None。"""


class StaticIdentity(BaseIdentityProvider):
    """固定身份。脚本、后台任务和测试用。"""

    def __init__(self, user_id: str | None = None):
        self._user_id = user_id or None

    def current_user_id(self):
        return self._user_id


class RequestIdentity(BaseIdentityProvider):
    """
    从 HTTP 请求解析身份：
    1. 已认证的 Django 用户 → username
    2. 否则读 settings.IDENTITY_HEADER（默认 X-CanCare-User）
    """

    def __init__(self, request):
        self._request = request

    def current_user_id(self):
        user = getattr(self._request, "user", None)
        if user is not None and getattr(user, "is_authenticated", False):
            return user.get_username()

        header = getattr(settings, "IDENTITY_HEADER", "HTTP_X_CANCARE_USER")
        value = (self._request.META.get(header) or "").strip()
        return value or None
