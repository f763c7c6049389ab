"""Hostname and URL derivation for cluster nodes."""

from __future__ import annotations

from typing import Dict, Mapping, Optional
from urllib.parse import urlsplit

from ..errors import ConfigurationError

DEBUG_SUFFIX = "-debug"


def ingress_host(name: str, namespace: str, domain: str, disable_namespace: bool = False) -> str:
    if disable_namespace:
        return f"{name}.{domain}"
    return f"{name}.{namespace}.{domain}"


def ingress_debug_host(name: str, namespace: str, domain: str, disable_namespace: bool = False) -> str:
    return ingress_host(f"{name}{DEBUG_SUFFIX}", namespace, domain, disable_namespace)


def _checked_url(url: str, name: str, kind: str) -> str:
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname or parts.hostname.startswith(".") or parts.hostname.endswith(".") or ".." in parts.hostname:
        raise ConfigurationError(f"bad {kind} url for node {name}: {url!r}")
    return url


def api_url(name: str, namespace: str, domain: str, scheme: str, disable_namespace: bool = False) -> str:
    """``https://bee-0.testnet.example.com`` or, without namespace, ``https://bee-0.example.com``."""
    host = ingress_host(name, namespace, domain, disable_namespace)
    return _checked_url(f"{scheme}://{host}", name, "API")


def debug_api_url(name: str, namespace: str, domain: str, scheme: str, disable_namespace: bool = False) -> str:
    host = ingress_debug_host(name, namespace, domain, disable_namespace)
    return _checked_url(f"{scheme}://{host}", name, "debug API")


def merge_maps(base: Optional[Mapping[str, str]], override: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Copy of ``base`` updated with ``override``; override wins on key collision."""
    merged: Dict[str, str] = dict(base or {})
    merged.update(override or {})
    return merged
