import asyncio
import ipaddress
import json
import socket
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse

import httpx
from loguru import logger

from portfolio_chat.tools.html_utilities import html_to_text, page_title

_DEFAULT_MAX_CHARS = 20_000
_MAX_RESPONSE_BYTES = 2_000_000  # 2 MB
_TIMEOUT_SECONDS = 20
_MAX_REDIRECTS = 5

_HEADERS = {
    "User-Agent": "portfolio-chat/0.1 (+https://github.com)",
    "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
}

Resolver = Callable[[str], Awaitable[list[str]]]


class RefusedUrlError(Exception):
    pass


def is_public_address(address: str) -> bool:
    ip = ipaddress.ip_address(address)
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    if ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_reserved or ip.is_multicast or ip.is_unspecified:
        return False
    return ip.is_global


async def resolve_host(host: str) -> list[str]:
    infos = await asyncio.get_running_loop().getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


def _ip_literal(host: str) -> str | None:
    try:
        return str(ipaddress.ip_address(host))
    except ValueError:
        return None


class ReadWebsiteTool:
    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        max_chars: int = _DEFAULT_MAX_CHARS,
        resolver: Resolver = resolve_host,
    ):
        self._client = client
        self._max_chars = max_chars
        self._resolver = resolver

    @property
    def name(self) -> str:
        return "read_website"

    @property
    def description(self) -> str:
        return (
            "Fetch a public web page (for example a project's live demo or the portfolio site) "
            "and return its readable text. GET requests over http or https to public addresses only."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The HTTP or HTTPS URL to read",
                },
            },
            "required": ["url"],
        }

    async def execute(self, tool_input: dict[str, Any]) -> str:
        url = str(tool_input.get("url", "")).strip()

        try:
            response = await self._get(url)
        except RefusedUrlError as ex:
            return f"Error: {ex}"
        except httpx.TimeoutException:
            return f"Error: Request timed out after {_TIMEOUT_SECONDS} seconds"
        except httpx.TooManyRedirects:
            return f"Error: Too many redirects (max {_MAX_REDIRECTS})"
        except httpx.HTTPError as ex:
            return f"Error: {ex}"

        if response.status_code >= 400:
            return f"Error: HTTP {response.status_code} fetching {url}"

        size = len(response.content)
        if size > _MAX_RESPONSE_BYTES:
            return f"Error: Response too large ({size:,} bytes, max {_MAX_RESPONSE_BYTES:,} bytes)"

        content_type = response.headers.get("content-type", "")
        title = ""
        if "html" in content_type:
            title = page_title(response.text)
            content = html_to_text(response.text)
        elif "application/json" in content_type:
            try:
                content = json.dumps(response.json(), indent=2)
            except ValueError:
                content = response.text
        else:
            content = response.text

        original_length = len(content)
        if original_length > self._max_chars:
            logger.debug(f"read_website truncated {url} from {original_length:,} chars")
            content = content[: self._max_chars] + f"\n\n[Content truncated at {self._max_chars:,} characters]"

        header = [f"URL: {url}"]
        if str(response.url) != url:
            header.append(f"Final URL: {response.url}")
        if title:
            header.append(f"Title: {title}")
        return "\n".join(header) + "\n\n" + content

    async def _check_target(self, url: str) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise RefusedUrlError("URL must use http or https scheme")

        host = parsed.hostname
        literal = _ip_literal(host)
        try:
            addresses = [literal] if literal else await self._resolver(host)
        except (OSError, UnicodeError) as ex:
            raise RefusedUrlError(f"Could not resolve {host}: {ex}") from ex
        if not addresses or not all(is_public_address(a) for a in addresses):
            logger.warning(f"read_website refused {host} ({', '.join(addresses) or 'no addresses'})")
            raise RefusedUrlError(f"Refusing to fetch {host}: not a public address")

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._follow(self._client, url)
        async with httpx.AsyncClient(headers=_HEADERS, timeout=_TIMEOUT_SECONDS) as client:
            return await self._follow(client, url)

    async def _follow(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        # Every hop is checked before it is requested.
        for _ in range(_MAX_REDIRECTS + 1):
            await self._check_target(url)
            response = await client.get(url, follow_redirects=False)
            if not response.is_redirect:
                return response
            url = str(response.url.join(response.headers["location"]))
        raise httpx.TooManyRedirects(f"Exceeded {_MAX_REDIRECTS} redirects", request=response.request)
