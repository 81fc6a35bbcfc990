"""
Derive the rate-limit client identifier from request headers.
"""

from typing import Mapping

from starlette.datastructures import Headers

# Every caller without forwarding headers shares this one bucket.
UNKNOWN_CLIENT = "unknown-client"


def identify_client(headers: Mapping[str, str]) -> str:
    """First X-Forwarded-For address, else X-Real-IP, else UNKNOWN_CLIENT.

    Repeated X-Forwarded-For lines are read in arrival order, as if joined
    into one comma-separated list.
    """
    if not isinstance(headers, Headers):
        headers = Headers(headers=dict(headers))

    forwarded_for = ", ".join(headers.getlist("x-forwarded-for"))
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return UNKNOWN_CLIENT
