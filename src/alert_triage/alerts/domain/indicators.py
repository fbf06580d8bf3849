"""
Indicator Extraction
====================

Pulls correlation indicators (IPs, file hashes, users, domains) out of an
alert's metadata and text. Indicators are returned as ``type:value``
strings so that sets from different alerts can be intersected directly.
"""

import re
from typing import Any, Dict, Iterable, Set

from alert_triage.alerts.domain.entities import NormalizedAlert

_IP_FIELDS = ("ip", "ip_address", "device_ip", "src_ip", "source_ip", "dest_ip", "dst_ip", "remote_ip")
_HASH_FIELDS = ("file_hash", "hash", "md5", "sha1", "sha256")
_USER_FIELDS = ("user", "username", "user_name", "account")
_DOMAIN_FIELDS = ("domain", "fqdn", "url_domain")

_IPV4_RE = re.compile(
    r"\b(?:(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)\.){3}(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)\b"
)
_HASH_RE = re.compile(r"\b(?:[a-fA-F0-9]{64}|[a-fA-F0-9]{40}|[a-fA-F0-9]{32})\b")
_DOMAIN_RE = re.compile(r"\b(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+(?:com|net|org|io|ru|cn|info|biz|xyz|top)\b", re.IGNORECASE)


def _values(metadata: Dict[str, Any], fields: Iterable[str]) -> Iterable[str]:
    for name in fields:
        value = metadata.get(name)
        if isinstance(value, str) and value.strip():
            yield value.strip()
        elif isinstance(value, (list, tuple)):
            for item in value:
                if isinstance(item, str) and item.strip():
                    yield item.strip()


def extract_indicators(alert: NormalizedAlert) -> Set[str]:
    """All indicators carried by ``alert``."""
    metadata = alert.metadata or {}
    text = " ".join(t for t in (alert.title, alert.description) if t)
    indicators: Set[str] = set()

    for value in _values(metadata, _IP_FIELDS):
        if _IPV4_RE.fullmatch(value):
            indicators.add(f"ip:{value}")
    for match in _IPV4_RE.finditer(text):
        indicators.add(f"ip:{match.group(0)}")

    for value in _values(metadata, _HASH_FIELDS):
        indicators.add(f"hash:{value.lower()}")
    for match in _HASH_RE.finditer(text):
        indicators.add(f"hash:{match.group(0).lower()}")

    for value in _values(metadata, _USER_FIELDS):
        indicators.add(f"user:{value.lower()}")

    for value in _values(metadata, _DOMAIN_FIELDS):
        indicators.add(f"domain:{value.lower()}")
    for match in _DOMAIN_RE.finditer(text):
        indicators.add(f"domain:{match.group(0).lower()}")

    return indicators
