"""Landscape API 数据模型"""

from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# 参数值：字符串，或有序的字符串列表（展开为 Key.1, Key.2, ...）
ParamValue = Union[str, List[str]]


def encode_rfc3986(value: str) -> str:
    """严格的百分号编码。

    只保留 ASCII 字母数字和 ``-_.~`` 不转义，空格编码为 ``%20``，
    非 ASCII 字符按 UTF-8 字节编码。

    Example:
        >>> encode_rfc3986("test string with spaces")
        'test%20string%20with%20spaces'
    """
    return quote(value, safe="")


class ApiCredentials(BaseModel):
    """Landscape API 凭证。进程生命周期内不可变，secret_key 不会出现在 repr 中。"""

    model_config = ConfigDict(frozen=True)

    access_key: str = ""
    secret_key: str = Field(default="", repr=False)

    def is_complete(self) -> bool:
        return bool(self.access_key.strip()) and bool(self.secret_key.strip())


class ApiCall(BaseModel):
    """一次 API 调用：远程 action 名称加参数映射。"""

    model_config = ConfigDict(frozen=True)

    action: str
    parameters: Dict[str, ParamValue] = Field(default_factory=dict)


class CanonicalRequest(BaseModel):
    """已签名的规范化请求。

    pairs 是排序后的 (key, value) 序列，签名作为最后一个 ``signature`` 参数追加。
    值保存原文，渲染时统一编码。

    Attributes:
        method: HTTP 方法
        pairs: 有序的参数对（最后一项为签名）
    """

    model_config = ConfigDict(frozen=True)

    method: str
    pairs: Tuple[Tuple[str, str], ...]

    @property
    def signature(self) -> str:
        return dict(self.pairs).get("signature", "")

    def to_query(self) -> str:
        """渲染为 ``key=value&...`` 形式的请求串（键和值均已编码）。"""
        return "&".join(
            f"{encode_rfc3986(key)}={encode_rfc3986(value)}" for key, value in self.pairs
        )


class _Record(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Creator(_Record):
    id: int
    name: str
    email: str


class Script(_Record):
    id: int
    title: str
    time_limit: int
    attachments: List[str]
    access_group: str
    username: Optional[str] = None
    creator: Optional[Creator] = None


class Activity(_Record):
    """ExecuteScript 返回的活动记录。"""

    id: int
    creation_time: str
    summary: str
    activity_type: str = Field(alias="type")
    creator: Optional[Creator] = None
    computer_id: Optional[Union[int, str]] = None
    parent_id: Optional[Union[int, str]] = None


class Computer(_Record):
    """GetComputers 返回的主机记录。"""

    id: int
    title: Optional[str] = None
    hostname: Optional[str] = None
    comment: Optional[str] = None
    total_memory: Optional[int] = None
    total_swap: Optional[int] = None
    annotations: Optional[Dict[str, str]] = None
    last_ping_time: Optional[str] = None
    last_exchange_time: Optional[str] = None
    tags: Optional[List[str]] = None
    access_group: Optional[str] = None
    distribution: Optional[str] = None
    container_info: Optional[str] = None
    vm_info: Optional[str] = None
    update_manager_prompt: Optional[str] = None
    cloud_instance_metadata: Optional[Dict[str, Any]] = None
    reboot_required_flag: bool = False


class ErrorEnvelope(_Record):
    """Landscape 错误信封：``{"error": ..., "message": ...}``。"""

    code: str = Field(validation_alias=AliasChoices("error", "code"))
    message: str
