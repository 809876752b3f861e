"""
HTTP请求工具

web_fetch：对 URL 做过滤后发起 GET 请求，响应体按字节上限截断。
跟随重定向时，每一跳的目标 URL 都会重新过滤。
"""

from __future__ import annotations

from typing import Optional

import httpx

from hostguard import __version__
from hostguard.agent.security.errors import NetworkError
from hostguard.agent.security.tool_filters import CompiledToolFilter
from hostguard.system.tools.base import Tool, ToolSchema, parse_arguments, require_str


def truncate_body(body: str, max_bytes: int) -> str:
    """
    按 UTF-8 字节数截断响应体

    截断处若落在多字节字符中间，丢弃不完整的字符。
    """
    encoded = body.encode("utf-8")
    if len(encoded) <= max_bytes:
        return body
    head = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return f"{head}...\n\n[Truncated, {len(encoded)} bytes total]"


class WebFetchTool(Tool):
    """URL 抓取工具"""

    name = "web_fetch"

    def __init__(
        self,
        max_bytes: int,
        url_filter: CompiledToolFilter,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            max_bytes: 响应体字节上限
            url_filter: 已合并硬编码基线的 URL 过滤器
            timeout: 请求超时（秒）
            transport: 自定义传输层（测试时注入 MockTransport）
        """
        self._max_bytes = max_bytes
        self._filter = url_filter
        self._timeout = timeout
        self._transport = transport

    def schema(self) -> ToolSchema:
        return ToolSchema(
            name=self.name,
            description="Fetch content from a URL",
            parameters={
                "type": "object",
                "properties": {
                    "url": {
                        "type": "string",
                        "description": "The URL to fetch",
                    },
                },
                "required": ["url"],
            },
        )

    async def _check_redirect(self, request: httpx.Request) -> None:
        self._filter.check(str(request.url), self.name, "url")

    async def execute(self, arguments: str) -> str:
        args = parse_arguments(arguments)
        url = require_str(args, "url")

        self._filter.check(url, self.name, "url")

        self.logger.debug(f"抓取 URL: {url}")

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                transport=self._transport,
                headers={"User-Agent": f"HostGuard/{__version__}"},
                event_hooks={"request": [self._check_redirect]},
            ) as client:
                response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        status = f"{response.status_code} {response.reason_phrase}".rstrip()
        return f"Status: {status}\n\n{truncate_body(response.text, self._max_bytes)}"
