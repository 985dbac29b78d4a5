"""
Allowlist 存储（“总是允许”的命令名集合）。

说明：
- HITL 的 `yes_and_remember` 会把命令名追加到 allowlist，并持久化；
- `YamlAllowlistStore` 写入项目配置文件的 `tools.shell_executor.security.allowlist`，
  与 `config.loader` 的 overlay 结构一致，下次 `load_config` 即可生效。
- HITL 在工作线程中调用 store（`asyncio.to_thread`），实现需自行保证线程安全。
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

import yaml

from codeagent_runtime.config.loader import _deep_merge
from codeagent_runtime.core.errors import AllowlistPersistenceError

logger = logging.getLogger(__name__)


@runtime_checkable
class AllowlistStore(Protocol):
    """allowlist 读写协议。"""

    def get_allowlist(self) -> List[str]:
        """返回当前 allowlist（副本）。"""

        ...

    def append_allowlist(self, name: str) -> None:
        """追加一个命令名并持久化（已存在则跳过）；失败时抛出异常。"""

        ...


class InMemoryAllowlistStore:
    """进程内 allowlist（测试/无持久化场景）。"""

    def __init__(self, initial: Optional[Iterable[str]] = None) -> None:
        self._items: List[str] = [str(x) for x in (initial or [])]
        self._lock = threading.Lock()

    def get_allowlist(self) -> List[str]:
        with self._lock:
            return list(self._items)

    def append_allowlist(self, name: str) -> None:
        with self._lock:
            if str(name) not in self._items:
                self._items.append(str(name))


class YamlAllowlistStore:
    """
    基于 YAML 配置文件的 allowlist。

    参数：
    - path：项目配置文件路径（不存在时在首次追加时创建）
    - base_allowlist：来自已加载配置的 allowlist（只读基线，与文件内容合并去重）
    """

    _KEYS = ("tools", "shell_executor", "security", "allowlist")

    def __init__(self, path: Path, *, base_allowlist: Optional[Iterable[str]] = None) -> None:
        self._path = Path(path)
        self._base = [str(x) for x in (base_allowlist or [])]
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        """配置文件路径。"""

        return self._path

    def _read(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        data = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"配置文件根节点必须为 mapping(dict)：{self._path}")
        return data

    def _file_allowlist(self, data: Dict[str, Any]) -> List[str]:
        node: Any = data
        for key in self._KEYS:
            if not isinstance(node, dict):
                return []
            node = node.get(key)
        if not isinstance(node, list):
            return []
        return [str(x) for x in node]

    def get_allowlist(self) -> List[str]:
        """返回基线 + 文件中的 allowlist（保持顺序，去重）。"""

        merged: List[str] = []
        for name in self._base + self._file_allowlist(self._read()):
            if name not in merged:
                merged.append(name)
        return merged

    def append_allowlist(self, name: str) -> None:
        """
        追加命令名到配置文件（保留文件中的其它配置）。

        异常：
        - AllowlistPersistenceError：读写或解析失败
        """

        try:
            with self._lock:
                data = self._read()
                current = self._file_allowlist(data)
                if name in current:
                    return
                overlay: Dict[str, Any] = {"tools": {"shell_executor": {"security": {"allowlist": current + [name]}}}}
                _deep_merge(data, overlay)
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._path.write_text(yaml.safe_dump(data, allow_unicode=True, sort_keys=False), encoding="utf-8")
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise AllowlistPersistenceError(
                f"failed to persist allowlist entry {name!r}: {e}",
                details={"path": str(self._path), "name": name},
            ) from e
        logger.info("Added %r to allowlist in %s", name, self._path)


__all__ = ["AllowlistStore", "InMemoryAllowlistStore", "YamlAllowlistStore"]
