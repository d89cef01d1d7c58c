"""
统一异常处理器。

挂到 DRF 的 EXCEPTION_HANDLER setting 上。
统一错误响应格式：
{
    "type":    "validation_error" | "auth" | "not_found" | "conflict",
    "code":    "NOT_AUTHENTICATED",
    "message": "A caller identity is required for this operation.",
    "detail":  { ... }  // 可选
}
"""

import logging

from django.http import JsonResponse
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.views import exception_handler as drf_default_handler

from .exceptions import BaseAppException
from .store.types import StoreError

logger = logging.getLogger(__name__)


def unified_exception_handler(exc, context):
    """
    DRF exception handler entry point.

    优先级：
    1. BaseAppException 及其子类 → 统一格式
    2. DRF 自带的 ValidationError → 转成统一格式
    3. 写操作漏出来的 StoreError → 503，存储不可用
    4. 其他异常 → 交给 DRF 默认处理
    """

    # --- 1. 我们自己的异常体系 ---
    if isinstance(exc, BaseAppException):
        body = {
            'type': exc.type,
            'code': exc.code,
            'message': exc.message,
        }
        if exc.detail is not None:
            body['detail'] = exc.detail
        return JsonResponse(body, status=exc.http_status)

    # --- 2. DRF 自带的 ValidationError ---
    if isinstance(exc, DRFValidationError):
        body = {
            'type': 'validation_error',
            'code': 'VALIDATION_ERROR',
            'message': 'Request validation failed',
            'detail': exc.detail,
        }
        return JsonResponse(body, status=400)

    # --- 3. 存储层错误（写操作 fail loud） ---
    if isinstance(exc, StoreError):
        logger.error("[api] store write failed: %s", exc)
        body = {
            'type': 'error',
            'code': 'STORE_UNAVAILABLE',
            'message': 'The document store rejected the write.',
        }
        return JsonResponse(body, status=503)

    # --- 4. 其他的交给 DRF 默认处理 ---
    return drf_default_handler(exc, context)
