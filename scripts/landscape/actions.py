"""Landscape action 分发表

每个 action 是一个独立的参数结构，携带：
- name: CLI 子命令名称
- remote_action: Landscape API 的 action 名称
- response_schema: 成功响应的结构
- parameters(): 转换为 API 参数映射
- finish(): 客户端侧的后处理（默认原样返回）

文档见 https://ubuntu.com/landscape/docs/api-scripts 和
https://ubuntu.com/landscape/docs/api-computers
"""

import base64
from typing import Any, ClassVar, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .exceptions import ScriptNotFoundError, UnknownActionError
from .models import Activity, ApiCall, Computer, ParamValue, Script


def find_script(scripts: List[Script], title: str) -> Script:
    """返回第一个标题以 title 开头的脚本。

    API 不支持查询单个脚本，只能在 GetScripts 的结果中查找。

    Raises:
        ScriptNotFoundError: 没有匹配的脚本
    """
    for script in scripts:
        if script.title.startswith(title):
            return script
    raise ScriptNotFoundError(title)


class Action(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: ClassVar[str]
    remote_action: ClassVar[str]
    response_schema: ClassVar[TypeAdapter]

    def parameters(self) -> Dict[str, ParamValue]:
        return {}

    def to_api_call(self) -> ApiCall:
        return ApiCall(action=self.remote_action, parameters=self.parameters())

    def finish(self, result: Any) -> Any:
        return result


class GetAllHosts(Action):
    name: ClassVar[str] = "get-all-hosts"
    remote_action: ClassVar[str] = "GetComputers"
    response_schema: ClassVar[TypeAdapter] = TypeAdapter(List[Computer])

    query: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)
    offset: Optional[int] = Field(default=None, ge=0)
    with_annotations: bool = False

    def parameters(self) -> Dict[str, ParamValue]:
        params: Dict[str, ParamValue] = {}
        if self.query is not None:
            params["query"] = self.query
        if self.limit is not None:
            params["limit"] = str(self.limit)
        if self.offset is not None:
            params["offset"] = str(self.offset)
        if self.with_annotations:
            params["with_annotations"] = "true"
        return params


class GetScripts(Action):
    name: ClassVar[str] = "get-scripts"
    remote_action: ClassVar[str] = "GetScripts"
    response_schema: ClassVar[TypeAdapter] = TypeAdapter(List[Script])


class GetScript(Action):
    """按标题前缀查找单个脚本（基于 GetScripts）。"""

    name: ClassVar[str] = "get-script"
    remote_action: ClassVar[str] = "GetScripts"
    response_schema: ClassVar[TypeAdapter] = TypeAdapter(List[Script])

    title: str = Field(min_length=1)

    def finish(self, result: List[Script]) -> Script:
        return find_script(result, self.title)


class GetScriptAttachments(Action):
    """列出脚本的附件名称（基于 GetScripts）。"""

    name: ClassVar[str] = "get-script-attachments"
    remote_action: ClassVar[str] = "GetScripts"
    response_schema: ClassVar[TypeAdapter] = TypeAdapter(List[Script])

    title: str = Field(min_length=1)

    def finish(self, result: List[Script]) -> List[str]:
        return list(find_script(result, self.title).attachments)


class ExecuteScript(Action):
    name: ClassVar[str] = "execute-script"
    remote_action: ClassVar[str] = "ExecuteScript"
    response_schema: ClassVar[TypeAdapter] = TypeAdapter(Activity)

    script_id: int
    query: str
    username: Optional[str] = None
    time_limit: Optional[int] = Field(default=None, ge=1)

    def parameters(self) -> Dict[str, ParamValue]:
        params: Dict[str, ParamValue] = {
            "query": self.query,
            "script_id": str(self.script_id),
        }
        if self.username is not None:
            params["username"] = self.username
        if self.time_limit is not None:
            params["time_limit"] = str(self.time_limit)
        return params


class CreateScriptAttachment(Action):
    """上传脚本附件。

    附件以 ``<文件名>$$<base64 内容>`` 的形式放在 ``file`` 参数中。
    """

    name: ClassVar[str] = "create-script-attachment"
    remote_action: ClassVar[str] = "CreateScriptAttachment"
    response_schema: ClassVar[TypeAdapter] = TypeAdapter(str)

    script_id: int
    filename: str = Field(min_length=1)
    content: bytes

    def parameters(self) -> Dict[str, ParamValue]:
        encoded = base64.b64encode(self.content).decode("ascii")
        return {
            "script_id": str(self.script_id),
            "file": f"{self.filename}$${encoded}",
        }


class RemoveScriptAttachment(Action):
    name: ClassVar[str] = "remove-script-attachment"
    remote_action: ClassVar[str] = "RemoveScriptAttachment"
    response_schema: ClassVar[TypeAdapter] = TypeAdapter(Optional[str])

    script_id: int
    filename: str = Field(min_length=1)

    def parameters(self) -> Dict[str, ParamValue]:
        return {"script_id": str(self.script_id), "filename": self.filename}


ACTIONS: Dict[str, Type[Action]] = {
    action.name: action
    for action in (
        CreateScriptAttachment,
        ExecuteScript,
        GetAllHosts,
        GetScript,
        GetScriptAttachments,
        GetScripts,
        RemoveScriptAttachment,
    )
}


def build_action(name: str, **params: Any) -> Action:
    """按名称构造 action 并校验参数。

    Args:
        name: CLI 子命令名称，如 ``get-all-hosts``
        **params: action 参数

    Returns:
        已校验的 action 实例

    Raises:
        UnknownActionError: 不支持的 action
        pydantic.ValidationError: 缺少必填参数或参数无效
    """
    try:
        action_cls = ACTIONS[name]
    except KeyError:
        raise UnknownActionError(f"不支持的 action: {name}") from None
    return action_cls(**params)
