"""事件总线（EventBus）与订阅句柄。"""

from __future__ import annotations

from codeagent_runtime.events.bus import EventBus, EventListener, Subscription

__all__ = ["EventBus", "EventListener", "Subscription"]
