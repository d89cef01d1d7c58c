"""
CareDataService — 数据访问层的组合入口。

不再是进程级单例：调用方（View、脚本、测试）显式传入 store 和身份，
每个角色 service 共享同一个 store / 身份 / 时钟 / 错误通道。

    service = CareDataService(store, RequestIdentity(request))
    patients = service.doctors.list_patients()
    if service.errors:
        ...  # 有读操作失败，patients 可能不是真的空
"""

from collections.abc import Callable
from datetime import datetime

from ..identity import BaseIdentityProvider
from ..store.base import BaseDocumentStore
from .base import ReadError, ReadErrorLog
from .dashboard import DashboardService
from .doctor import DoctorService
from .nurse import NurseService
from .patient import PatientService
from .responsible import ResponsibleService
from .social import SocialService
from .users import UserService

__all__ = [
    "CareDataService",
    "DashboardService",
    "DoctorService",
    "NurseService",
    "PatientService",
    "ReadError",
    "ReadErrorLog",
    "ResponsibleService",
    "SocialService",
    "UserService",
]


class CareDataService:

    def __init__(
        self,
        store: BaseDocumentStore,
        identity: BaseIdentityProvider,
        clock: Callable[[], datetime] | None = None,
        max_workers: int | None = None,
    ):
        self.store = store
        self.identity = identity
        self.errors = ReadErrorLog()

        def build(service_cls):
            return service_cls(store, identity, clock=clock, errors=self.errors, max_workers=max_workers)

        self.users = build(UserService)
        self.doctors = build(DoctorService)
        self.nurses = build(NurseService)
        self.patients = build(PatientService)
        self.responsible = build(ResponsibleService)
        self.social = build(SocialService)
        self.dashboards = build(DashboardService)

    @property
    def degraded(self) -> bool:
        """本次上下文里是否有读操作失败后返回了默认值。"""
        return bool(self.errors)
