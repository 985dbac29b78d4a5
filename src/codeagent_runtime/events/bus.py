"""
EventBus：会话级事件的发布/订阅通道（可显式构造，无全局单例）。

约束：
- `emit` 同步投递：先投递给该 `type` 的订阅者，再投递给“全部事件”订阅者，返回前全部完成；
- 不排队、不丢弃；需要异步批处理的消费方（例如 UI）自行缓冲；
- 事件的 id/timestamp/session_id 只由 bus 分配；
- 单个 listener 抛异常只记录日志，不影响其它 listener 与发出方（fail-open）。
"""

from __future__ import annotations

import logging
import secrets
import string
from typing import Callable, Dict, List, Optional, TypeVar

from codeagent_runtime.core.contracts import BaseEvent
from codeagent_runtime.core.utils import now_ms, now_utc

logger = logging.getLogger(__name__)

EventT = TypeVar("EventT", bound=BaseEvent)
EventListener = Callable[[BaseEvent], None]

_ALL = "*"
_ID_ALPHABET = string.ascii_lowercase + string.digits


def _random_suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


class Subscription:
    """
    订阅句柄。

    说明：
    - `unsubscribe()` 只移除“这一次注册”；重复调用为 no-op。
    """

    def __init__(self, bus: "EventBus", key: str, listener: EventListener) -> None:
        self._bus = bus
        self._key = key
        self.listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        """该订阅是否仍然有效。"""

        return self._active

    def unsubscribe(self) -> None:
        """移除订阅（幂等）。"""

        if not self._active:
            return
        self._active = False
        self._bus._remove(self)


class EventBus:
    """
    类型化的事件总线。

    参数：
    - session_id：会话标识；缺省时生成 `session_<ms>_<rand>`
    """

    def __init__(self, session_id: Optional[str] = None) -> None:
        self._session_id = session_id or f"session_{now_ms()}_{_random_suffix()}"
        self._listeners: Dict[str, List[Subscription]] = {}
        self._counter = 0

    @property
    def session_id(self) -> str:
        """当前会话标识。"""

        return self._session_id

    def _next_event_id(self) -> str:
        """生成事件 id：计数器保证同一毫秒内也唯一。"""

        self._counter += 1
        return f"{self._session_id}_{self._counter}_{now_ms()}"

    def _stamp(self, event: EventT) -> EventT:
        return event.model_copy(
            update={
                "id": self._next_event_id(),
                "timestamp": now_utc(),
                "session_id": self._session_id,
                "sub_events": list(event.sub_events),
            }
        )

    def emit(self, event: EventT) -> EventT:
        """
        发出事件并同步投递。

        参数：
        - event：事件对象（身份字段会被 bus 覆盖；原对象不被修改）

        返回：
        - 已分配身份字段的事件副本（即订阅者收到的对象）
        """

        stamped = self._stamp(event)
        event_type = str(getattr(stamped, "type", "") or "")
        # 先复制快照：投递过程中的 subscribe/unsubscribe 不影响本次投递
        targets = list(self._listeners.get(event_type, ())) + list(self._listeners.get(_ALL, ()))
        for sub in targets:
            if not sub.active:
                continue
            try:
                sub.listener(stamped)
            except Exception:
                logger.exception("Event listener failed for %s (event_id=%s)", event_type, stamped.id)
        return stamped

    def subscribe(self, event_type: str, listener: EventListener) -> Subscription:
        """订阅某一类型的事件。"""

        return self._add(str(event_type), listener)

    def subscribe_all(self, listener: EventListener) -> Subscription:
        """订阅全部事件（在具体类型的订阅者之后收到）。"""

        return self._add(_ALL, listener)

    def once(self, event_type: str, listener: EventListener) -> Subscription:
        """订阅某一类型事件，仅触发一次。"""

        holder: List[Subscription] = []

        def _wrapper(ev: BaseEvent) -> None:
            holder[0].unsubscribe()
            listener(ev)

        sub = self._add(str(event_type), _wrapper)
        holder.append(sub)
        return sub

    def attach_sub_event(self, parent: BaseEvent, child: EventT) -> EventT:
        """
        为已发出的事件追加子事件（分配身份字段，但不投递给订阅者）。

        返回：
        - 已追加到 `parent.sub_events` 的子事件
        """

        stamped = self._stamp(child)
        parent.sub_events.append(stamped)
        return stamped

    def listener_count(self, event_type: Optional[str] = None) -> int:
        """返回订阅数量（不传 type 时返回总数，含“全部事件”订阅）。"""

        if event_type is not None:
            return len(self._listeners.get(str(event_type), ()))
        return sum(len(v) for v in self._listeners.values())

    def clear(self) -> None:
        """移除全部订阅。"""

        for subs in list(self._listeners.values()):
            for sub in list(subs):
                sub.unsubscribe()
        self._listeners.clear()

    def _add(self, key: str, listener: EventListener) -> Subscription:
        sub = Subscription(self, key, listener)
        self._listeners.setdefault(key, []).append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        subs = self._listeners.get(sub._key)
        if not subs:
            return
        for i, existing in enumerate(subs):
            if existing is sub:
                del subs[i]
                break
        if not subs:
            self._listeners.pop(sub._key, None)


__all__ = ["EventBus", "EventListener", "Subscription"]
