"""
核心契约（Core Contracts）：UI/会话事件模型。

说明：
- 所有事件共享公共字段：`id/timestamp/session_id/sub_events`；
- 公共身份字段由 EventBus 在 emit 时统一分配（生产者填写的值会被覆盖）；
- 事件类型为封闭集合（pydantic discriminated union），未知 `type` 在解析时直接拒绝。
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ConfirmationChoice(str, Enum):
    """人工确认的三种选择：批准 / 拒绝 / 批准并记住。"""

    YES = "yes"
    NO = "no"
    YES_AND_REMEMBER = "yes_and_remember"


class ConfirmationOptions(BaseModel):
    """
    确认请求的选项。

    字段：
    - show_remember_option：是否向用户提供“总是允许”选项
    - default_choice：超时后的默认选择（None 表示按 `no` 处理）
    - timeout：超时毫秒数（None 或 <=0 表示使用 HITLManager 配置的超时）
    """

    model_config = ConfigDict(extra="forbid")

    show_remember_option: Optional[bool] = None
    default_choice: Optional[ConfirmationChoice] = None
    timeout: Optional[int] = None


class BaseEvent(BaseModel):
    """
    事件公共字段。

    - id：事件唯一标识（bus 分配）
    - timestamp：UTC 时间（bus 分配）
    - session_id：会话标识（bus 分配）
    - sub_events：发出后附加的子事件（有序）
    """

    model_config = ConfigDict(extra="forbid")

    id: Optional[str] = None
    timestamp: Optional[datetime] = None
    session_id: Optional[str] = None
    sub_events: List["UIEvent"] = Field(default_factory=list)

    def to_json(self) -> str:
        """序列化为 JSON 字符串。"""

        return self.model_dump_json(exclude_none=True)


class TaskStartedEvent(BaseEvent):
    """任务开始。"""

    type: Literal["task_started"] = "task_started"
    description: str
    working_directory: str


class TaskCompletedEvent(BaseEvent):
    """任务结束（成功或失败）。"""

    type: Literal["task_completed"] = "task_completed"
    success: bool
    duration: int
    iterations: int
    summary: str
    error: Optional[str] = None


class TextGeneratedEvent(BaseEvent):
    type: Literal["text_generated"] = "text_generated"
    text: str


class ThoughtGeneratedEvent(BaseEvent):
    type: Literal["thought_generated"] = "thought_generated"
    iteration: int
    thought: str
    context: str = ""


class ToolExecutionStartedEvent(BaseEvent):
    """工具开始执行。"""

    type: Literal["tool_execution_started"] = "tool_execution_started"
    tool_name: str
    tool_execution_id: str
    iteration: Optional[int] = None
    args: Dict[str, Any] = Field(default_factory=dict)
    display_title: str = ""
    display_status: str = ""


class ToolExecutionCompletedEvent(BaseEvent):
    """工具执行完成（含失败/被拦截）。"""

    type: Literal["tool_execution_completed"] = "tool_execution_completed"
    tool_name: str
    tool_execution_id: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    duration: Optional[int] = None
    iteration: Optional[int] = None
    display_title: str = ""
    display_summary: str = ""
    display_details: Optional[str] = None


class ToolOutputEvent(BaseEvent):
    type: Literal["tool_output"] = "tool_output"
    tool_name: str
    content: str
    iteration: Optional[int] = None


class SystemInfoEvent(BaseEvent):
    """系统级提示（info/warning/error）。"""

    type: Literal["system_info"] = "system_info"
    level: Literal["info", "warning", "error"]
    message: str
    context: Optional[Dict[str, Any]] = None


class UserInputEvent(BaseEvent):
    type: Literal["user_input"] = "user_input"
    input: str
    command: Optional[str] = None


class SessionStats(BaseModel):
    """会话统计（session_stats 事件载荷）。"""

    model_config = ConfigDict(extra="forbid")

    total_interactions: int = 0
    total_tokens_used: int = 0
    average_response_time: float = 0.0
    unique_files_accessed: int = 0
    session_duration: int = 0


class SessionStatsEvent(BaseEvent):
    type: Literal["session_stats"] = "session_stats"
    stats: SessionStats


class SnapshotCreatedEvent(BaseEvent):
    type: Literal["snapshot_created"] = "snapshot_created"
    snapshot_id: str
    description: str
    files_count: int


class ToolConfirmationRequestEvent(BaseEvent):
    """请求人工确认（HITL）。"""

    type: Literal["tool_confirmation_request"] = "tool_confirmation_request"
    confirmation_id: str
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    description: str
    options: ConfirmationOptions = Field(default_factory=ConfirmationOptions)


class ToolConfirmationResponseEvent(BaseEvent):
    """
    人工确认的回应。

    说明：
    - `choice` 优先；缺失时按 `approved` 映射为 yes/no。
    """

    type: Literal["tool_confirmation_response"] = "tool_confirmation_response"
    confirmation_id: str
    approved: bool
    choice: Optional[ConfirmationChoice] = None


UIEvent = Annotated[
    Union[
        TaskStartedEvent,
        TaskCompletedEvent,
        TextGeneratedEvent,
        ThoughtGeneratedEvent,
        ToolExecutionStartedEvent,
        ToolExecutionCompletedEvent,
        ToolOutputEvent,
        SystemInfoEvent,
        UserInputEvent,
        SessionStatsEvent,
        SnapshotCreatedEvent,
        ToolConfirmationRequestEvent,
        ToolConfirmationResponseEvent,
    ],
    Field(discriminator="type"),
]

_EVENT_CLASSES = (
    TaskStartedEvent,
    TaskCompletedEvent,
    TextGeneratedEvent,
    ThoughtGeneratedEvent,
    ToolExecutionStartedEvent,
    ToolExecutionCompletedEvent,
    ToolOutputEvent,
    SystemInfoEvent,
    UserInputEvent,
    SessionStatsEvent,
    SnapshotCreatedEvent,
    ToolConfirmationRequestEvent,
    ToolConfirmationResponseEvent,
)

# sub_events 是自引用的 union：所有事件类都需要在 UIEvent 定义后重建
BaseEvent.model_rebuild()
for _cls in _EVENT_CLASSES:
    _cls.model_rebuild()

_EVENT_ADAPTER: TypeAdapter[UIEvent] = TypeAdapter(UIEvent)

EVENT_TYPES = tuple(c.model_fields["type"].default for c in _EVENT_CLASSES)


def parse_event(data: Dict[str, Any]) -> BaseEvent:
    """
    将 wire dict 解析为具体事件类型。

    异常：
    - pydantic.ValidationError：`type` 不在封闭集合内或字段不合法
    """

    return _EVENT_ADAPTER.validate_python(data)


def parse_event_json(raw_json: str) -> BaseEvent:
    """从 JSON 字符串解析事件。"""

    return _EVENT_ADAPTER.validate_json(raw_json)


__all__ = [
    "BaseEvent",
    "ConfirmationChoice",
    "ConfirmationOptions",
    "EVENT_TYPES",
    "SessionStats",
    "SessionStatsEvent",
    "SnapshotCreatedEvent",
    "SystemInfoEvent",
    "TaskCompletedEvent",
    "TaskStartedEvent",
    "TextGeneratedEvent",
    "ThoughtGeneratedEvent",
    "ToolConfirmationRequestEvent",
    "ToolConfirmationResponseEvent",
    "ToolExecutionCompletedEvent",
    "ToolExecutionStartedEvent",
    "ToolOutputEvent",
    "UIEvent",
    "UserInputEvent",
    "parse_event",
    "parse_event_json",
]
