"""
共享密码校验
"""

import hmac


def authorize(presented: str | None, configured: str) -> bool:
    """
    校验客户端提交的密码

    configured 为空字符串时关闭认证，任何请求都放行；
    否则要求 presented 与 configured 逐字节相同，缺失视为失败。
    """
    if configured == "":
        return True
    if presented is None:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), configured.encode("utf-8"))
