"""Landscape API 客户端封装"""

import logging
from pathlib import Path
from typing import Any, List, Optional, Protocol, Tuple, Union

import requests
from pydantic import TypeAdapter

from . import __version__
from .actions import Action, build_action
from .config import DEFAULT_TIMEOUT, LandscapeSettings
from .decode import JsonResponseDecoder, ResponseDecoder
from .exceptions import ApiError, NetworkError, UnexpectedStatus
from .models import Activity, ApiCall, CanonicalRequest, Computer, Script
from .sign import HmacSha256Signer, Signer

# 日志记录器
logger = logging.getLogger(__name__)

# 标准请求头
DEFAULT_HEADERS = {
    "accept": "application/json",
    "content-type": "application/x-www-form-urlencoded",
    "user-agent": f"landscape-cli/{__version__}",
}


class Transport(Protocol):
    def send(self, uri: str, request: CanonicalRequest) -> Tuple[int, str]:
        ...


class HttpTransport:
    """通过 HTTPS 发送已签名的请求。

    只尝试一次，不自动重试：CreateScriptAttachment 等写操作不保证幂等，
    需要重试只读操作时由调用方重新走完整流程（重新生成时间戳和签名）。

    Attributes:
        timeout: 请求超时（秒）
        session: HTTP 会话对象
    """

    def __init__(
        self, timeout: float = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None
    ) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, uri: str, request: CanonicalRequest) -> Tuple[int, str]:
        """发送请求。

        POST 时参数放在表单请求体中，GET 时放在查询串中。

        Args:
            uri: API 地址
            request: 已签名的规范化请求

        Returns:
            (HTTP 状态码, 响应体)

        Raises:
            NetworkError: 连接失败、超时、TLS 错误等
        """
        body = request.to_query()
        logger.debug(f"发送 Landscape API 请求: {request.method} {uri}")

        try:
            if request.method == "GET":
                response = self.session.get(
                    f"{uri}?{body}", headers=DEFAULT_HEADERS, timeout=self.timeout
                )
            else:
                response = self.session.request(
                    request.method, uri, data=body, headers=DEFAULT_HEADERS, timeout=self.timeout
                )
        except requests.exceptions.Timeout as e:
            logger.error("请求超时", exc_info=True)
            raise NetworkError(f"请求超时（{self.timeout} 秒）: {uri}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"网络错误: {str(e)}", exc_info=True)
            raise NetworkError(f"网络错误: {str(e)}") from e

        logger.debug(f"收到响应，状态码: {response.status_code}")
        return response.status_code, response.text

    def close(self) -> None:
        """关闭底层 HTTP 会话。"""
        self.session.close()

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class LandscapeAPI:
    """Landscape API 客户端。

    每次调用依次执行：规范化 -> 签名 -> 发送 -> 解析。签名器、传输层和解析器
    都可以替换（测试、其他签名方案或响应格式）。

    Attributes:
        settings: 进程级配置（地址与凭证）
        signer: 请求签名器
        transport: HTTP 传输层
        decoder: 响应解析器
    """

    def __init__(
        self,
        settings: LandscapeSettings,
        signer: Optional[Signer] = None,
        transport: Optional[Transport] = None,
        decoder: Optional[ResponseDecoder] = None,
    ) -> None:
        self.settings = settings
        self.signer = signer or HmacSha256Signer(settings.uri)
        self.transport = transport or HttpTransport(timeout=settings.timeout)
        self.decoder = decoder or JsonResponseDecoder()

        logger.debug("LandscapeAPI 客户端已初始化")

    def execute(self, call: ApiCall, schema: TypeAdapter) -> Any:
        """签名并发送一次调用，返回解析后的结果。

        Args:
            call: API 调用
            schema: 成功响应的结构

        Returns:
            类型化的结果

        Raises:
            ConfigurationError: 凭证缺失（不会发起请求）
            NetworkError: 网络错误
            UnexpectedStatus: 非 2xx 且响应体不是错误信封
            ApiError: Landscape 返回错误信封
            DecodeError: 成功响应无法解析
        """
        request = self.signer.sign(call, self.settings.credentials)
        status_code, body = self.transport.send(self.settings.uri, request)

        if not 200 <= status_code < 300:
            error = self.decoder.decode_error(body)
            if error is None:
                logger.error(
                    f"HTTP 错误: {status_code}", extra={"response": body[:200]}
                )
                raise UnexpectedStatus(status_code, body)
            logger.error(f"API 业务错误: code={error.code}, message={error.message}")
            raise error

        result = self.decoder.decode(body, schema)
        if isinstance(result, ApiError):
            logger.error(f"API 业务错误: code={result.code}, message={result.message}")
            raise result

        return result

    def call(self, action: Action) -> Any:
        """执行一个已构造好的 action。"""
        logger.debug(f"执行 action: {action.name}")
        result = self.execute(action.to_api_call(), action.response_schema)
        return action.finish(result)

    def dispatch(self, name: str, **params: Any) -> Any:
        """按名称从分发表构造 action 并执行。

        Raises:
            UnknownActionError: 分发表中没有该名称
            pydantic.ValidationError: 参数缺失或无效，此时不会发起请求
        """
        return self.call(build_action(name, **params))

    def close(self) -> None:
        """释放传输层持有的连接。"""
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "LandscapeAPI":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def get_scripts(self) -> List[Script]:
        """获取所有脚本。"""
        return self.dispatch("get-scripts")

    def get_script(self, title: str) -> Script:
        """获取标题以 title 开头的第一个脚本。

        Raises:
            ScriptNotFoundError: 没有匹配的脚本
        """
        return self.dispatch("get-script", title=title)

    def get_script_attachments(self, title: str) -> List[str]:
        return self.dispatch("get-script-attachments", title=title)

    def execute_script(
        self,
        title: str,
        query: str,
        username: Optional[str] = None,
        time_limit: Optional[int] = None,
    ) -> Activity:
        """在 query 选中的主机上执行脚本。

        Args:
            title: 脚本标题（前缀匹配）
            query: Landscape 主机查询，如 ``tag:web``
            username: 执行脚本的用户
            time_limit: 超时时间（秒）

        Returns:
            Landscape 活动记录
        """
        script = self.get_script(title)
        logger.info(f"执行脚本 {script.title} (id={script.id})，主机查询: {query}")
        return self.dispatch(
            "execute-script",
            script_id=script.id,
            query=query,
            username=username,
            time_limit=time_limit,
        )

    def create_script_attachment(self, title: str, path: Union[str, Path]) -> str:
        """上传本地文件作为脚本附件，返回附件名称。"""
        path = Path(path)
        content = path.read_bytes()
        script = self.get_script(title)
        logger.info(f"上传附件 {path.name} 到脚本 {script.title}")
        return self.dispatch(
            "create-script-attachment",
            script_id=script.id,
            filename=path.name,
            content=content,
        )

    def remove_script_attachment(self, title: str, filename: str) -> Optional[str]:
        script = self.get_script(title)
        logger.info(f"删除脚本 {script.title} 的附件 {filename}")
        return self.dispatch(
            "remove-script-attachment", script_id=script.id, filename=Path(filename).name
        )

    def get_all_hosts(
        self,
        query: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        with_annotations: bool = False,
    ) -> List[Computer]:
        """获取已注册的主机，保持服务端返回的顺序。"""
        hosts = self.dispatch(
            "get-all-hosts",
            query=query,
            limit=limit,
            offset=offset,
            with_annotations=with_annotations,
        )
        logger.info(f"成功获取 {len(hosts)} 台主机")
        return hosts
