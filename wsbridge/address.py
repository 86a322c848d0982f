"""
目标地址校验

X-Target 的格式为 host:port，host 只能是以下三种之一:
- IPv4 点分十进制（仅做语法校验，每段 1-3 位数字）
- localhost
- 域名（每段 1-63 个字母/数字/连字符，不能以连字符开头或结尾，顶级域为 2-63 个字母）

port 必须在 1-65535 之间，且不允许前导 0。
"""

import re
from dataclasses import dataclass

from .errors import TargetValidationError

_IPV4_PATTERN = re.compile(r"\d{1,3}(?:\.\d{1,3}){3}")
_HOSTNAME_PATTERN = re.compile(
    r"(?:[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?\.)+[A-Za-z]{2,63}"
)
_PORT_PATTERN = re.compile(r"[1-9]\d{0,4}")

LOCALHOST = "localhost"


@dataclass(frozen=True)
class TargetAddress:
    """已校验的目标地址"""

    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def is_ipv4(self) -> bool:
        return _IPV4_PATTERN.fullmatch(self.host) is not None


def _is_valid_host(host: str) -> bool:
    if host == LOCALHOST:
        return True
    if _IPV4_PATTERN.fullmatch(host):
        return True
    return _HOSTNAME_PATTERN.fullmatch(host) is not None


def parse_target(raw: str | None) -> TargetAddress:
    """
    解析并校验目标地址

    Args:
        raw: 原始字符串，如 "example.com:443"

    Returns:
        TargetAddress

    Raises:
        TargetValidationError: 缺失或格式不合法
    """
    if not raw:
        raise TargetValidationError(raw)

    host, sep, port_text = raw.rpartition(":")
    if not sep or not host:
        raise TargetValidationError(raw)

    if not _PORT_PATTERN.fullmatch(port_text):
        raise TargetValidationError(raw)
    port = int(port_text)
    if not 1 <= port <= 65535:
        raise TargetValidationError(raw)

    if not _is_valid_host(host):
        raise TargetValidationError(raw)

    return TargetAddress(host=host, port=port)


def is_valid_target(raw: str | None) -> bool:
    """目标地址是否合法"""
    try:
        parse_target(raw)
    except TargetValidationError:
        return False
    return True
