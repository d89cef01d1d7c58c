import logging

from ..exceptions import ValidationError
from ..records import mappers
from ..records.types import Role, UserProfile
from .base import USERS, BaseDataService, fail_soft

logger = logging.getLogger(__name__)


class UserService(BaseDataService):

    @fail_soft()
    def get_profile(self, uid: str | None = None) -> UserProfile | None:
        uid = self._resolve_owner(uid)
        if not uid:
            return None
        doc = self.store.get(USERS, uid)
        if doc is None:
            logger.info("[users] no user document for uid=%s", uid)
            return None
        return mappers.decode_user(doc.data, doc.id)

    def get_role(self, uid: str | None = None) -> Role | None:
        """用户当前角色；用户不存在或读失败返回 None。"""
        profile = self.get_profile(uid)
        return profile.role if profile is not None else None

    def save_profile(self, uid: str, data: dict) -> None:
        """merge 写入 users/{uid}，只覆盖给出的字段。"""
        if not uid:
            raise ValidationError(message="uid is required.", code="MISSING_UID")
        self.store.set(USERS, uid, dict(data), merge=True)
        logger.info("[users] profile saved for uid=%s (%d fields)", uid, len(data))
