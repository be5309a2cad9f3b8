#!/usr/bin/env python3
"""
Landscape API 客户端测试

使用假的传输层（不访问网络）验证完整调用流程：
规范化 -> 签名 -> 发送 -> 解析
"""

import base64
import json
import os
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import requests
import yaml
from pydantic import ValidationError

from landscape import (
    ApiCredentials,
    ApiError,
    ConfigurationError,
    DecodeError,
    HttpTransport,
    LandscapeAPI,
    LandscapeSettings,
    NetworkError,
    ScriptNotFoundError,
    UnexpectedStatus,
    UnknownActionError,
)
from landscape.actions import GetAllHosts
from landscape.models import CanonicalRequest

API_URI = "https://landscape.example.com/api/"

SCRIPTS = [
    {
        "id": 7,
        "title": "Upgrade packages",
        "time_limit": 300,
        "attachments": ["packages.txt"],
        "access_group": "global",
    },
    {
        "id": 8,
        "title": "Reboot",
        "time_limit": 60,
        "attachments": [],
        "access_group": "global",
    },
]


class FakeTransport:
    """按顺序返回预设响应，并记录每次调用。"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def send(self, uri, request):
        self.calls.append((uri, request))
        return self.responses.pop(0)

    def params(self, index=-1):
        return dict(self.calls[index][1].pairs)


def make_api(*responses, access_key="KEY", secret_key="SECRET"):
    settings = LandscapeSettings(
        uri=API_URI,
        credentials=ApiCredentials(access_key=access_key, secret_key=secret_key),
    )
    transport = FakeTransport(*responses)
    return LandscapeAPI(settings, transport=transport), transport


def test_get_all_hosts():
    """测试获取主机列表"""
    print("测试 get-all-hosts...")

    hosts = [{"id": 2, "title": "web-02"}, {"id": 1, "title": "web-01"}]
    api, transport = make_api((200, json.dumps(hosts)))

    result = api.call(GetAllHosts())

    assert [host.title for host in result] == ["web-02", "web-01"]
    assert len(transport.calls) == 1
    uri, request = transport.calls[0]
    assert uri == API_URI
    params = transport.params()
    assert params["action"] == "GetComputers"
    assert params["access_key_id"] == "KEY"
    assert "query" not in params
    assert request.pairs[-1][0] == "signature"
    print(f"✓ 成功获取 {len(result)} 台主机，顺序保持不变")


def test_get_all_hosts_with_filters():
    api, transport = make_api((200, "[]"))

    assert api.get_all_hosts(query="tag:web", limit=10, offset=20, with_annotations=True) == []

    params = transport.params()
    assert params["query"] == "tag:web"
    assert params["limit"] == "10"
    assert params["offset"] == "20"
    assert params["with_annotations"] == "true"


def test_empty_credentials_never_reach_transport():
    """测试空凭证不会发起请求"""
    print("\n测试空凭证...")

    api, transport = make_api((200, "[]"), access_key="", secret_key="")

    try:
        api.get_all_hosts()
    except ConfigurationError:
        pass
    else:
        raise AssertionError("应当抛出 ConfigurationError")

    assert transport.calls == []
    print("✓ 传输层调用次数为 0")


def test_service_unavailable():
    """测试 HTTP 503 空响应"""
    print("\n测试 HTTP 503...")

    api, _ = make_api((503, ""))

    try:
        api.get_scripts()
    except UnexpectedStatus as e:
        assert e.status_code == 503
        assert e.body == ""
        print(f"✓ 抛出 UnexpectedStatus: {e}")
    else:
        raise AssertionError("应当抛出 UnexpectedStatus")


def test_error_envelope_with_error_status():
    api, _ = make_api((401, json.dumps({"error": "InvalidCredentials", "message": "bad key"})))

    try:
        api.get_scripts()
    except ApiError as e:
        assert e.code == "InvalidCredentials"
        assert e.message == "bad key"
    else:
        raise AssertionError("应当抛出 ApiError")


def test_error_envelope_with_success_status():
    api, _ = make_api((200, json.dumps({"error": "UnknownScript", "message": "no such script"})))

    try:
        api.get_scripts()
    except ApiError as e:
        assert e == ApiError("UnknownScript", "no such script")
    else:
        raise AssertionError("应当抛出 ApiError")


def test_malformed_success_body():
    api, _ = make_api((200, "<html></html>"))

    try:
        api.get_all_hosts()
    except DecodeError:
        return
    raise AssertionError("应当抛出 DecodeError")


def test_get_script_by_prefix():
    """测试按标题前缀查找脚本"""
    print("\n测试 get-script...")

    api, transport = make_api((200, json.dumps(SCRIPTS)), (200, json.dumps(SCRIPTS)))

    script = api.get_script("Upgr")
    assert script.id == 7
    assert transport.params()["action"] == "GetScripts"

    assert api.get_script_attachments("Upgrade") == ["packages.txt"]
    print(f"✓ 找到脚本: {script.title}")


def test_get_script_not_found():
    api, _ = make_api((200, json.dumps(SCRIPTS)))

    try:
        api.get_script("nonexistent")
    except ScriptNotFoundError as e:
        assert e.title == "nonexistent"
    else:
        raise AssertionError("应当抛出 ScriptNotFoundError")


def test_execute_script():
    """测试执行脚本"""
    print("\n测试 execute-script...")

    activity = {
        "id": 1001,
        "creation_time": "2024-01-15T10:30:05Z",
        "summary": "Run script: Reboot",
        "type": "ActivityGroup",
    }
    api, transport = make_api((200, json.dumps(SCRIPTS)), (200, json.dumps(activity)))

    result = api.execute_script("Reboot", "tag:web", username="root")

    assert result.id == 1001
    assert len(transport.calls) == 2
    params = transport.params()
    assert params["action"] == "ExecuteScript"
    assert params["script_id"] == "8"
    assert params["query"] == "tag:web"
    assert params["username"] == "root"
    assert "time_limit" not in params
    print(f"✓ 活动已创建: {result.summary}")


def test_create_script_attachment():
    """测试上传附件"""
    print("\n测试 create-script-attachment...")

    api, transport = make_api((200, json.dumps(SCRIPTS)), (200, '"hello.sh"'))

    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "hello.sh"
        path.write_bytes(b"#!/bin/sh\necho hello\n")

        assert api.create_script_attachment("Upgrade", path) == "hello.sh"

    params = transport.params()
    assert params["action"] == "CreateScriptAttachment"
    assert params["script_id"] == "7"
    encoded = base64.b64encode(b"#!/bin/sh\necho hello\n").decode("ascii")
    assert params["file"] == f"hello.sh$${encoded}"
    print("✓ 附件已上传")


def test_create_script_attachment_missing_file():
    api, transport = make_api((200, json.dumps(SCRIPTS)))

    try:
        api.create_script_attachment("Upgrade", "/nonexistent/invalid_path")
    except OSError:
        pass
    else:
        raise AssertionError("应当抛出 OSError")

    # 文件不可读时不发起任何请求
    assert transport.calls == []


def test_remove_script_attachment():
    api, transport = make_api((200, json.dumps(SCRIPTS)), (200, "null"))

    assert api.remove_script_attachment("Upgrade", "some/dir/packages.txt") is None

    params = transport.params()
    assert params["action"] == "RemoveScriptAttachment"
    assert params["filename"] == "packages.txt"
    assert params["script_id"] == "7"


def test_fresh_signature_per_call():
    """重新调用时重新生成时间戳和签名"""
    api, transport = make_api((200, "[]"), (200, "[]"))

    with mock.patch("landscape.sign.datetime") as fake_datetime:
        fake_datetime.now.side_effect = [
            datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc),
            datetime(2024, 1, 15, 10, 30, 1, tzinfo=timezone.utc),
        ]
        api.get_all_hosts()
        api.get_all_hosts()

    first, second = transport.params(0), transport.params(1)
    assert first["timestamp"] == "2024-01-15T10:30:00Z"
    assert second["timestamp"] == "2024-01-15T10:30:01Z"
    assert first["signature"] != second["signature"]


def test_http_transport_sends_form_body():
    """测试 HTTP 传输层"""
    print("\n测试 HTTP 传输层...")

    session = mock.Mock(spec=requests.Session)
    session.request.return_value = mock.Mock(status_code=200, text="[]")
    transport = HttpTransport(timeout=5, session=session)
    request = CanonicalRequest(method="POST", pairs=(("action", "GetScripts"), ("signature", "a+b/c=")))

    assert transport.send(API_URI, request) == (200, "[]")

    args, kwargs = session.request.call_args
    assert args == ("POST", API_URI)
    assert kwargs["data"] == "action=GetScripts&signature=a%2Bb%2Fc%3D"
    assert kwargs["timeout"] == 5
    assert session.request.call_count == 1
    print("✓ 请求体已按规范化结果发送")


def test_http_transport_network_errors():
    """测试网络错误（不重试）"""
    print("\n测试网络错误...")

    request = CanonicalRequest(method="POST", pairs=(("action", "GetScripts"),))
    for error in (
        requests.exceptions.ConnectTimeout("timed out"),
        requests.exceptions.ConnectionError("connection refused"),
        requests.exceptions.SSLError("certificate verify failed"),
    ):
        session = mock.Mock(spec=requests.Session)
        session.request.side_effect = error
        transport = HttpTransport(session=session)

        try:
            transport.send(API_URI, request)
        except NetworkError as e:
            assert e.__cause__ is error
        else:
            raise AssertionError(f"应当抛出 NetworkError: {error!r}")

        assert session.request.call_count == 1
    print("✓ 网络错误转换为 NetworkError，只尝试一次")


def test_bad_gateway_html_body():
    """测试 HTTP 502 HTML 响应"""
    print("\n测试 HTTP 502...")

    page = "<html><body><h1>502 Bad Gateway</h1></body></html>"
    api, _ = make_api((502, page))

    try:
        api.get_all_hosts()
    except UnexpectedStatus as e:
        assert e.status_code == 502
        assert e.body == page
        assert "502 Bad Gateway" in str(e)
        print(f"✓ 抛出 UnexpectedStatus: {e}")
    else:
        raise AssertionError("应当抛出 UnexpectedStatus")


class TokenSigner:
    """只附加 access key 的签名器，不做 HMAC。"""

    def sign(self, call, credentials, timestamp=None):
        pairs = [("action", call.action)]
        pairs.extend(sorted(call.parameters.items()))
        pairs.append(("token", credentials.access_key))
        return CanonicalRequest(method="POST", pairs=tuple(pairs))


class YamlDecoder:
    """把响应体当作 YAML 解析的解析器。"""

    def decode(self, body, schema):
        return schema.validate_python(yaml.safe_load(body))

    def decode_error(self, body):
        return None


def test_custom_signer_and_decoder():
    """测试替换签名器和解析器"""
    print("\n测试自定义签名器和解析器...")

    settings = LandscapeSettings(
        uri=API_URI, credentials=ApiCredentials(access_key="KEY", secret_key="SECRET")
    )
    transport = FakeTransport((200, "- id: 2\n  title: web-02\n- id: 1\n  title: web-01\n"))
    api = LandscapeAPI(settings, signer=TokenSigner(), transport=transport, decoder=YamlDecoder())

    hosts = api.get_all_hosts(query="tag:web")

    assert [host.title for host in hosts] == ["web-02", "web-01"]
    assert transport.calls[0][1].pairs == (
        ("action", "GetComputers"),
        ("query", "tag:web"),
        ("token", "KEY"),
    )
    print("✓ 调用流程无需修改即可使用其他签名方案和响应格式")


def test_dispatch_by_name():
    """测试按名称分发"""
    print("\n测试 dispatch...")

    api, transport = make_api((200, json.dumps(SCRIPTS)))

    scripts = api.dispatch("get-scripts")
    assert [script.id for script in scripts] == [7, 8]
    assert transport.params()["action"] == "GetScripts"

    for name, params, error in (
        ("reboot-everything", {}, UnknownActionError),
        ("get-script", {"title": ""}, ValidationError),
        ("execute-script", {"query": "tag:web"}, ValidationError),
    ):
        try:
            api.dispatch(name, **params)
        except error:
            continue
        raise AssertionError(f"应当抛出 {error.__name__}: {name}")

    assert len(transport.calls) == 1
    print("✓ 未知 action 或参数无效时不发起请求")


def test_http_transport_get():
    """测试 GET 请求"""
    print("\n测试 HTTP GET...")

    session = mock.Mock(spec=requests.Session)
    session.get.return_value = mock.Mock(status_code=200, text="[]")
    transport = HttpTransport(timeout=5, session=session)
    request = CanonicalRequest(method="GET", pairs=(("action", "GetScripts"), ("signature", "a+b/c=")))

    assert transport.send(API_URI, request) == (200, "[]")

    args, kwargs = session.get.call_args
    assert args == (f"{API_URI}?action=GetScripts&signature=a%2Bb%2Fc%3D",)
    assert kwargs["timeout"] == 5
    assert session.request.call_count == 0
    print("✓ GET 参数放在查询串中")


def test_close_releases_session():
    """测试关闭 HTTP 会话"""
    print("\n测试关闭会话...")

    session = mock.Mock(spec=requests.Session)
    with HttpTransport(session=session) as transport:
        assert transport.session is session
    session.close.assert_called_once_with()

    settings = LandscapeSettings(uri=API_URI)
    transport = mock.Mock()
    with LandscapeAPI(settings, transport=transport) as api:
        assert api.transport is transport
    transport.close.assert_called_once_with()

    # 没有 close 方法的传输层
    api, _ = make_api()
    api.close()
    print("✓ 会话已关闭")


def main():
    """运行所有测试"""
    print("=" * 60)
    print("Landscape API 客户端测试")
    print("=" * 60 + "\n")

    tests = [
        test_get_all_hosts,
        test_get_all_hosts_with_filters,
        test_empty_credentials_never_reach_transport,
        test_service_unavailable,
        test_error_envelope_with_error_status,
        test_error_envelope_with_success_status,
        test_malformed_success_body,
        test_get_script_by_prefix,
        test_get_script_not_found,
        test_execute_script,
        test_create_script_attachment,
        test_create_script_attachment_missing_file,
        test_remove_script_attachment,
        test_fresh_signature_per_call,
        test_http_transport_sends_form_body,
        test_http_transport_network_errors,
        test_bad_gateway_html_body,
        test_custom_signer_and_decoder,
        test_dispatch_by_name,
        test_http_transport_get,
        test_close_releases_session,
    ]

    results = []
    for test in tests:
        try:
            test()
            results.append(True)
        except Exception as e:
            print(f"✗ 测试异常 {test.__name__}: {e}")
            import traceback
            traceback.print_exc()
            results.append(False)

    print("\n" + "=" * 60)
    print(f"测试结果: {sum(results)}/{len(results)} 通过")
    print("=" * 60)

    return all(results)


if __name__ == "__main__":
    success = main()
    sys.exit(0 if success else 1)
