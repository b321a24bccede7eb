"""
文件引用解析
存储引用可以是本地路径或 http(s) URL；存储后端的选择（本地磁盘 / S3）由外部决定，
这里只负责把引用变成字节内容
"""

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel

from resume_intake.errors import ResourceUnreadable

logger = logging.getLogger(__name__)


class ResolvedFile(BaseModel):
    """解析后的文件内容"""
    content: bytes
    size: int
    name: str


def is_url(reference: str) -> bool:
    return urlparse(reference).scheme in ("http", "https")


def reference_name(reference: str) -> str:
    """取引用的文件名部分（URL 去掉查询串）"""
    if is_url(reference):
        return os.path.basename(urlparse(reference).path)
    return os.path.basename(reference)


class FileReferenceResolver:
    """本地路径 / URL 的统一读取入口"""

    def __init__(self, timeout_seconds: float = 60.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            timeout_seconds: 下载远程文件的超时
            transport: 自定义 httpx transport（测试时注入 MockTransport）
        """
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def is_readable(self, reference: str) -> bool:
        """
        判断引用是否可读

        本地文件检查存在性和读权限；URL 不发请求，只检查格式，下载失败在 read() 中报告
        """
        if not reference:
            return False
        if is_url(reference):
            return bool(urlparse(reference).netloc)
        path = Path(reference)
        return path.is_file() and os.access(path, os.R_OK)

    def size_of(self, reference: str) -> Optional[int]:
        """本地文件大小；URL 返回 None（未知）"""
        if is_url(reference) or not self.is_readable(reference):
            return None
        return Path(reference).stat().st_size

    async def read(self, reference: str) -> ResolvedFile:
        """
        读取文件内容

        Raises:
            ResourceUnreadable: 文件不存在、无权限或下载失败
        """
        if is_url(reference):
            return await self._download(reference)

        if not self.is_readable(reference):
            raise ResourceUnreadable(f"File is not readable: {reference}")

        try:
            content = Path(reference).read_bytes()
        except OSError as e:
            raise ResourceUnreadable(f"File is not readable: {reference}: {e}") from e

        return ResolvedFile(content=content, size=len(content), name=reference_name(reference))

    async def _download(self, url: str) -> ResolvedFile:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                follow_redirects=True,
                transport=self._transport
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise ResourceUnreadable(f"Failed to download {url}: {e}") from e

        if response.status_code >= 400:
            raise ResourceUnreadable(f"Failed to download {url}: HTTP {response.status_code}")

        content = response.content
        logger.debug("[FileResolver] Downloaded %s (%s bytes)", url, len(content))
        return ResolvedFile(content=content, size=len(content), name=reference_name(url))


class TextExtractor(ABC):
    """文档 -> 纯文本；PDF / DOCX 等富格式的解析由外部实现"""

    @abstractmethod
    async def extract(self, reference: str) -> str:
        """返回文档的纯文本内容"""


class PlainTextExtractor(TextExtractor):
    """按 UTF-8 读取纯文本文档"""

    def __init__(self, resolver: Optional[FileReferenceResolver] = None):
        self.resolver = resolver or FileReferenceResolver()

    async def extract(self, reference: str) -> str:
        resolved = await self.resolver.read(reference)
        return resolved.content.decode("utf-8", errors="replace")
