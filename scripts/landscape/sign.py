"""Landscape API 参数规范化与请求签名"""

import base64
import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Protocol, Tuple
from urllib.parse import urlparse

from .exceptions import ConfigurationError
from .models import ApiCall, ApiCredentials, CanonicalRequest, ParamValue, encode_rfc3986

logger = logging.getLogger(__name__)

# 签名协议常量，见 https://ubuntu.com/landscape/docs/low-level-http-requests
HTTP_METHOD = "POST"
SIGNATURE_METHOD = "HmacSHA256"
SIGNATURE_VERSION = "2"
API_VERSION = "2011-08-01"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
SIGNATURE_KEY = "signature"

__all__ = [
    "HmacSha256Signer",
    "Signer",
    "canonical_query_string",
    "canonicalize",
    "compute_signature",
    "encode_rfc3986",
    "format_timestamp",
    "string_to_sign",
]


def _expand(params: Mapping[str, ParamValue]) -> List[Tuple[str, str]]:
    """展开列表参数。

    列表值展开为 ``key.1``、``key.2`` ...，序号从 1 开始并保持调用方给定的顺序；
    空列表不产生任何条目。
    """
    pairs = []
    for key, value in params.items():
        if isinstance(value, (list, tuple)):
            for index, item in enumerate(value, 1):
                pairs.append((f"{key}.{index}", str(item)))
        else:
            pairs.append((key, str(value)))
    return pairs


def canonicalize(params: Mapping[str, ParamValue]) -> List[Tuple[str, str]]:
    """生成规范化的参数序列。

    算法：
    1. 展开列表参数（见 ``_expand``）
    2. 按键的 UTF-8 字节序排序（区分大小写），键相同时按值排序

    插入顺序不影响结果，相同输入总是得到相同输出。

    Args:
        params: 参数映射，值为字符串或字符串列表

    Returns:
        排序后的 (key, value) 列表（值未编码）

    Example:
        >>> canonicalize({"b": "2", "Hosts": ["h1", "h2"]})
        [('Hosts.1', 'h1'), ('Hosts.2', 'h2'), ('b', '2')]
    """
    return sorted(
        _expand(params),
        key=lambda pair: (pair[0].encode("utf-8"), pair[1].encode("utf-8")),
    )


def canonical_query_string(pairs: List[Tuple[str, str]]) -> str:
    return "&".join(f"{encode_rfc3986(key)}={encode_rfc3986(value)}" for key, value in pairs)


def string_to_sign(method: str, host: str, path: str, query: str) -> str:
    """构造待签名字符串：``METHOD\\nhost\\npath\\nquery``。"""
    return "\n".join([method.upper(), host.lower(), path, query])


def compute_signature(secret_key: str, message: str) -> str:
    """计算 HMAC-SHA256 签名并做 base64 编码。"""
    digest = hmac.new(
        secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def format_timestamp(moment: datetime) -> str:
    """UTC 时间，精确到秒，如 ``2024-01-15T10:30:00Z``。"""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


class Signer(Protocol):
    """请求签名接口。替换签名方案时不需要改动规范化和传输层。"""

    def sign(
        self,
        call: ApiCall,
        credentials: ApiCredentials,
        timestamp: Optional[datetime] = None,
    ) -> CanonicalRequest:
        ...


class HmacSha256Signer:
    """Landscape 签名版本 2（HMAC-SHA256）。

    Attributes:
        host: 参与签名的主机名（小写，不含端口）
        path: 参与签名的请求路径
        method: HTTP 方法
    """

    def __init__(
        self, uri: str, method: str = HTTP_METHOD, api_version: str = API_VERSION
    ) -> None:
        parsed = urlparse(uri)
        if not parsed.hostname:
            raise ConfigurationError(f"无效的 API 地址: {uri!r}")

        self.host = parsed.hostname.lower()
        self.path = parsed.path or "/"
        self.method = method.upper()
        self.api_version = api_version

    def _metadata(self, call: ApiCall, credentials: ApiCredentials, timestamp: datetime) -> Dict[str, str]:
        return {
            "action": call.action,
            "access_key_id": credentials.access_key,
            "signature_method": SIGNATURE_METHOD,
            "signature_version": SIGNATURE_VERSION,
            "timestamp": format_timestamp(timestamp),
            "version": self.api_version,
        }

    def sign(
        self,
        call: ApiCall,
        credentials: ApiCredentials,
        timestamp: Optional[datetime] = None,
    ) -> CanonicalRequest:
        """签名一次 API 调用。

        调用参数中与签名元数据或 ``signature`` 同名的键会被忽略。

        Args:
            call: 待签名的调用
            credentials: API 凭证
            timestamp: 签名时间，默认当前 UTC 时间

        Returns:
            附带 ``signature`` 参数的规范化请求

        Raises:
            ConfigurationError: 凭证缺失或为空
        """
        if not credentials.is_complete():
            raise ConfigurationError("缺少 Landscape API 凭证 (access key / secret key)")

        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        metadata = self._metadata(call, credentials, timestamp)
        reserved = set(metadata) | {SIGNATURE_KEY}
        dropped = sorted(key for key in call.parameters if key in reserved)
        if dropped:
            logger.warning(f"忽略保留参数: {dropped}")

        params: Dict[str, ParamValue] = {
            key: value for key, value in call.parameters.items() if key not in reserved
        }
        params.update(metadata)

        pairs = canonicalize(params)
        message = string_to_sign(self.method, self.host, self.path, canonical_query_string(pairs))
        signature = compute_signature(credentials.secret_key, message)

        logger.debug(f"已签名请求: action={call.action}, 参数数={len(pairs)}")

        return CanonicalRequest(method=self.method, pairs=tuple(pairs) + ((SIGNATURE_KEY, signature),))
