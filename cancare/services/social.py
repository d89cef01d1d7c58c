"""
Posts and group chats.

帖子的点赞 / 评论、群聊的加入 / 已读都是「读 → 改数组或 map → 写回」。
写回时带 expect（读到的旧值）做 compare-and-set，被并发修改就重读重试，
最多 MAX_WRITE_ATTEMPTS 次，仍冲突抛 ConflictError。
"""

import logging
from collections.abc import Callable
from operator import attrgetter

from ..exceptions import ConflictError, NotFoundError, ValidationError
from ..records import mappers
from ..records.types import GroupChat, GroupMessage, Post, Role
from ..store.types import SERVER_TIMESTAMP, PreconditionFailed, Query
from ..store.base import sort_nulls_last
from .base import (
    DOCTORS,
    GROUP_CHAT_MESSAGES,
    GROUP_CHATS,
    NURSES,
    PATIENTS,
    POSTS,
    USERS,
    BaseDataService,
    fail_soft,
)

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3

DEFAULT_SENDER_NAME = "User"

# 成员显示名：按顺序查这些 collection，文档存在但没有 name 时用对应的默认名
_MEMBER_SOURCES = (
    (DOCTORS, "Doctor"),
    (NURSES, "Nurse"),
    (PATIENTS, "Patient"),
)


def _role_value(role) -> str:
    try:
        return Role(role.lower() if isinstance(role, str) else role).value
    except ValueError:
        raise ValidationError(
            message=f"Unknown sender role: {role!r}.",
            code="INVALID_ROLE",
            detail={"known_roles": [r.value for r in Role if r is not Role.UNKNOWN]},
        ) from None


class SocialService(BaseDataService):

    # ── Posts ──────────────────────────────────────────────────────────────

    @fail_soft(list)
    def list_posts(self) -> list[Post]:
        query = Query(POSTS).ordered("createdAt", descending=True)
        return self._fetch_ordered(query, mappers.decode_post)

    def like_post(self, post_id: str, user_id: str | None = None) -> int:
        """每个用户只能点赞一次；返回点赞后的总数（已点过则返回当前数）。"""
        user_id = self._require_actor(user_id, "like a post")

        def mutate(data):
            liked_by = [str(uid) for uid in (data.get("likedBy") or [])]
            likes = mappers.as_int(data.get("likes"))
            if user_id in liked_by:
                return None, likes
            return {"likes": likes + 1, "likedBy": liked_by + [user_id]}, likes + 1

        return self._read_modify_write(POSTS, post_id, ("likes", "likedBy"), mutate)

    def add_comment(
        self,
        post_id: str,
        text: str,
        author_id: str | None = None,
        author_name: str | None = None,
    ) -> None:
        """
        追加评论。评论存在数组里，服务端时间戳不能放进数组元素，
        所以 createdAt 用本地时钟。
        """
        author_id = self._require_actor(author_id, "comment on a post")
        if author_name is None:
            author_name = self._display_name(DOCTORS, author_id, default=DEFAULT_SENDER_NAME)

        comment = {
            "text": text,
            "authorId": author_id,
            "authorName": author_name,
            "createdAt": self.clock(),
        }

        def mutate(data):
            comments = list(data.get("comments") or [])
            return {"comments": comments + [comment]}, None

        self._read_modify_write(POSTS, post_id, ("comments",), mutate)

    # ── Group chats ────────────────────────────────────────────────────────

    @fail_soft(list)
    def list_group_chats(self, user_id: str | None = None) -> list[GroupChat]:
        """用户所在的群，最近活跃的在前。"""
        user_id = self._resolve_owner(user_id)
        if not user_id:
            return []
        query = (
            Query(GROUP_CHATS)
            .where("memberIds", "array_contains", user_id)
            .ordered("updatedAt", descending=True)
        )
        return self._fetch_ordered(query, mappers.decode_group_chat)

    @fail_soft()
    def get_group_chat(self, group_id: str) -> GroupChat | None:
        doc = self.store.get(GROUP_CHATS, group_id)
        return mappers.decode_group_chat(doc.data, doc.id) if doc is not None else None

    @fail_soft(list)
    def list_group_messages(self, group_id: str) -> list[GroupMessage]:
        """
        群消息，最早的在前。

        同时匹配 groupChatId 和旧字段 groupId；两个字段都没有的消息不归属任何群，不返回。
        时间相同按消息 id 排，没有时间的排最后。
        """
        messages: dict[str, GroupMessage] = {}
        for field in ("groupChatId", "groupId"):
            query = Query(GROUP_CHAT_MESSAGES).where(field, "==", group_id)
            for message in self._fetch(query, mappers.decode_group_message):
                messages.setdefault(message.id, message)

        by_id = sorted(messages.values(), key=attrgetter("id"))
        return sort_nulls_last(by_id, key=attrgetter("created_at"))

    @fail_soft(dict)
    def list_group_members(self, group_id: str) -> dict[str, str]:
        """member id → 显示名，依次查 doctors / nurses / patients，都没有为 "User"。"""
        doc = self.store.get(GROUP_CHATS, group_id)
        if doc is None:
            return {}
        chat = mappers.decode_group_chat(doc.data, doc.id)
        names = self._resolve_each(chat.member_ids, self._member_name)
        return dict(zip(chat.member_ids, names))

    def _member_name(self, member_id: str) -> str:
        for collection, fallback in _MEMBER_SOURCES:
            try:
                doc = self.store.get(collection, member_id)
            except Exception as exc:
                logger.warning("[social] member lookup failed for %s/%s: %s", collection, member_id, exc)
                self.errors.record("SocialService.member_name", exc)
                return DEFAULT_SENDER_NAME
            if doc is not None:
                name = doc.get("name")
                return name.strip() if isinstance(name, str) and name.strip() else fallback
        return DEFAULT_SENDER_NAME

    def join_group_chat(self, group_id: str, user_id: str | None = None) -> None:
        """加入群聊；已经是成员则什么都不写。成员只增不减。"""
        user_id = self._require_actor(user_id, "join a group chat")

        def mutate(data):
            member_ids = [str(uid) for uid in (data.get("memberIds") or [])]
            if user_id in member_ids:
                return None, None
            return {"memberIds": member_ids + [user_id], "updatedAt": SERVER_TIMESTAMP}, None

        self._read_modify_write(GROUP_CHATS, group_id, ("memberIds",), mutate)
        logger.info("[social] %s joined group chat %s", user_id, group_id)

    def send_group_message(
        self,
        group_id: str,
        message: str,
        sender_id: str | None = None,
        sender_name: str | None = None,
        sender_role: Role | str | None = None,
    ) -> str:
        sender_id = self._require_actor(sender_id, "send a group message")
        if self.store.get(GROUP_CHATS, group_id) is None:
            raise NotFoundError(
                message=f"Group chat {group_id} does not exist.",
                code="GROUP_CHAT_NOT_FOUND",
                detail={"group_id": group_id},
            )
        if sender_name is None or sender_role is None:
            resolved_name, resolved_role = self._resolve_sender(sender_id)
            sender_name = sender_name if sender_name is not None else resolved_name
            sender_role = sender_role if sender_role is not None else resolved_role

        message_id = self.store.add(GROUP_CHAT_MESSAGES, {
            "groupChatId": group_id,
            "senderId": sender_id,
            "senderName": sender_name,
            "senderRole": _role_value(sender_role),
            "message": message,
            "createdAt": SERVER_TIMESTAMP,
            "readBy": {sender_id: True},
        })
        self._update(GROUP_CHATS, group_id, {"updatedAt": SERVER_TIMESTAMP})
        logger.info("[social] message %s sent to group %s by %s", message_id, group_id, sender_id)
        return message_id

    def _resolve_sender(self, sender_id: str) -> tuple[str, Role]:
        """
        发送者名字 / 角色：
        1. doctors 里有档案 → 医生
        2. users 里角色是 nurse → 护士，名字取 nurses 文档
        3. users 里有其他已知角色 → 该角色
        4. 都不行 → ("User", patient)
        """
        try:
            doctor = self._lookup_profile(DOCTORS, sender_id, mappers.decode_doctor)
            if doctor is not None:
                return doctor.name, Role.DOCTOR

            user_doc = self.store.get(USERS, sender_id)
            role = mappers.decode_user(user_doc.data, user_doc.id).role if user_doc else Role.UNKNOWN
        except Exception as exc:
            logger.warning("[social] sender lookup failed for %s: %s", sender_id, exc)
            self.errors.record("SocialService.resolve_sender", exc)
            return DEFAULT_SENDER_NAME, Role.PATIENT

        if role is Role.NURSE:
            return self._display_name(NURSES, sender_id, default="Nurse"), Role.NURSE
        if role is Role.UNKNOWN:
            return DEFAULT_SENDER_NAME, Role.PATIENT
        return DEFAULT_SENDER_NAME, role

    def mark_message_as_read(self, message_id: str, user_id: str | None = None) -> None:
        user_id = self._require_actor(user_id, "mark a message as read")

        def mutate(data):
            read_by = dict(data.get("readBy") or {})
            if read_by.get(user_id) is True:
                return None, None
            read_by[user_id] = True
            return {"readBy": read_by}, None

        self._read_modify_write(GROUP_CHAT_MESSAGES, message_id, ("readBy",), mutate)

    # ── 读改写 ─────────────────────────────────────────────────────────────

    def _read_modify_write(self, collection: str, doc_id: str, guarded: tuple[str, ...], mutate: Callable):
        """
        mutate(data) -> (changes | None, result)。changes 为 None 表示不用写。

        guarded 字段的旧值作为 expect 传给 update；被并发改过就重试。
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            doc = self.store.get(collection, doc_id)
            if doc is None:
                raise NotFoundError(
                    message=f"{collection}/{doc_id} does not exist.",
                    code="DOCUMENT_NOT_FOUND",
                    detail={"collection": collection, "id": doc_id},
                )
            changes, result = mutate(doc.data)
            if changes is None:
                return result
            expect = {field: doc.data.get(field) for field in guarded}
            try:
                self.store.update(collection, doc_id, changes, expect=expect)
                return result
            except PreconditionFailed:
                logger.info("[social] concurrent write on %s/%s, retrying (%d/%d)",
                            collection, doc_id, attempt, MAX_WRITE_ATTEMPTS)

        raise ConflictError(
            message=f"{collection}/{doc_id} kept changing; giving up after {MAX_WRITE_ATTEMPTS} attempts.",
            code="WRITE_CONTENTION",
            detail={"collection": collection, "id": doc_id},
        )
