"""HTTP client for a storage node's API and debug API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import requests

from ..context import RunContext
from ..errors import ContextCancelled, NodeAPIError
from ..models import Addresses, Balance, DownloadedFile, Settlement, Settlements, Tag, Topology, content_hash

_LOGGER = logging.getLogger(__name__)


class NodeClient(Protocol):
    """Operations the verification engine and the topology model call on a node."""

    name: str

    def upload_file(self, ctx: RunContext, data: bytes, batch_id: str, *, name: Optional[str] = None, tag: Optional[int] = None) -> str:
        ...

    def upload_chunk(self, ctx: RunContext, data: bytes, batch_id: str, *, tag: Optional[int] = None) -> str:
        ...

    def download_file(self, ctx: RunContext, address: str) -> DownloadedFile:
        ...

    def download_chunk(self, ctx: RunContext, address: str) -> bytes:
        ...

    def create_postage_batch(self, ctx: RunContext, amount: int, depth: int, label: str) -> str:
        ...

    def get_or_create_batch(self, ctx: RunContext, amount: int, depth: int, label: str) -> str:
        ...

    def create_tag(self, ctx: RunContext) -> Tag:
        ...

    def wait_sync(self, ctx: RunContext, uid: int) -> None:
        ...

    def has_chunk(self, ctx: RunContext, address: str) -> bool:
        ...

    def addresses(self, ctx: RunContext) -> Addresses:
        ...

    def overlay(self, ctx: RunContext) -> str:
        ...

    def balances(self, ctx: RunContext) -> Dict[str, Balance]:
        ...

    def peers(self, ctx: RunContext) -> List[str]:
        ...

    def settlements(self, ctx: RunContext) -> Settlements:
        ...

    def topology(self, ctx: RunContext) -> Topology:
        ...


def tag_synced(tag: Tag) -> bool:
    expected = max(tag.total, tag.split) - tag.seen
    if expected <= 0:
        return tag.synced > 0
    return tag.synced >= expected


@dataclass
class BeeClient:
    """``requests``-backed :class:`NodeClient` for one node.

    ``http_client`` can be the ``requests`` module, a ``requests.Session`` or
    any object with compatible ``get``/``post`` methods.
    """

    name: str
    api_url: str
    debug_api_url: str
    timeout: float = 30.0
    verify_tls: bool = True
    sync_timeout: float = 30.0
    sync_poll_interval: float = 0.1
    http_client: Any = requests

    def _url(self, base: str, suffix: str) -> str:
        return f"{base.rstrip('/')}{suffix}"

    def _request(self, ctx: RunContext, method: str, base: str, suffix: str, **kwargs: Any) -> Any:
        ctx.raise_if_done()
        url = self._url(base, suffix)
        call = getattr(self.http_client, method)
        try:
            response = call(url, timeout=ctx.timeout(self.timeout), verify=self.verify_tls, **kwargs)
        except requests.RequestException as exc:
            ctx.raise_if_done()
            raise NodeAPIError(self.name, f"{method.upper()} {url}: {exc}", url=url) from exc
        return response

    def _checked(self, ctx: RunContext, method: str, base: str, suffix: str, **kwargs: Any) -> Any:
        response = self._request(ctx, method, base, suffix, **kwargs)
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise NodeAPIError(
                self.name,
                f"{method.upper()} {suffix}: {exc}",
                status_code=getattr(response, "status_code", None),
                url=self._url(base, suffix),
            ) from exc
        return response

    @staticmethod
    def _headers(batch_id: str, tag: Optional[int]) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/octet-stream",
            "Swarm-Postage-Batch-Id": batch_id,
        }
        if tag is not None:
            headers["Swarm-Tag"] = str(tag)
        return headers

    # Content -------------------------------------------------------------
    def upload_file(self, ctx: RunContext, data: bytes, batch_id: str, *, name: Optional[str] = None, tag: Optional[int] = None) -> str:
        params = {"name": name} if name else None
        response = self._checked(ctx, "post", self.api_url, "/bzz", data=data, headers=self._headers(batch_id, tag), params=params)
        return response.json()["reference"]

    def upload_chunk(self, ctx: RunContext, data: bytes, batch_id: str, *, tag: Optional[int] = None) -> str:
        response = self._checked(ctx, "post", self.api_url, "/chunks", data=data, headers=self._headers(batch_id, tag))
        return response.json()["reference"]

    def download_file(self, ctx: RunContext, address: str) -> DownloadedFile:
        response = self._checked(ctx, "get", self.api_url, f"/bzz/{address}")
        data = response.content
        return DownloadedFile(size=len(data), hash=content_hash(data), data=data)

    def download_chunk(self, ctx: RunContext, address: str) -> bytes:
        response = self._checked(ctx, "get", self.api_url, f"/chunks/{address}")
        return response.content

    def has_chunk(self, ctx: RunContext, address: str) -> bool:
        response = self._request(ctx, "get", self.debug_api_url, f"/chunks/{address}")
        if response.status_code == 404:
            return False
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise NodeAPIError(self.name, f"has chunk {address}: {exc}", status_code=response.status_code) from exc
        return True

    # Postage -------------------------------------------------------------
    def create_postage_batch(self, ctx: RunContext, amount: int, depth: int, label: str) -> str:
        response = self._checked(
            ctx,
            "post",
            self.debug_api_url,
            f"/stamps/{amount}/{depth}",
            params={"label": label} if label else None,
        )
        return response.json()["batchID"]

    def get_or_create_batch(self, ctx: RunContext, amount: int, depth: int, label: str) -> str:
        response = self._checked(ctx, "get", self.debug_api_url, "/stamps")
        for stamp in response.json().get("stamps", []) or []:
            if not stamp.get("usable", True):
                continue
            if stamp.get("label") != label or int(stamp.get("depth", 0)) < depth:
                continue
            _LOGGER.debug("node %s: reusing batch %s", self.name, stamp["batchID"])
            return stamp["batchID"]
        return self.create_postage_batch(ctx, amount, depth, label)

    # Tags ------------------------------------------------------------------
    def create_tag(self, ctx: RunContext) -> Tag:
        response = self._checked(ctx, "post", self.api_url, "/tags", json={})
        return _tag_from_payload(response.json())

    def get_tag(self, ctx: RunContext, uid: int) -> Tag:
        response = self._checked(ctx, "get", self.api_url, f"/tags/{uid}")
        return _tag_from_payload(response.json())

    def wait_sync(self, ctx: RunContext, uid: int) -> None:
        wait_ctx = ctx.with_timeout(self.sync_timeout)
        try:
            while True:
                try:
                    tag = self.get_tag(wait_ctx, uid)
                except ContextCancelled:
                    ctx.raise_if_done()
                    break
                if tag_synced(tag):
                    return
                if not wait_ctx.sleep(self.sync_poll_interval):
                    ctx.raise_if_done()
                    break
        finally:
            wait_ctx.cancel()
        raise NodeAPIError(self.name, f"tag {uid} not synced after {self.sync_timeout:.1f}s")

    # Debug API state -----------------------------------------------------------
    def addresses(self, ctx: RunContext) -> Addresses:
        payload = self._checked(ctx, "get", self.debug_api_url, "/addresses").json()
        return Addresses(
            overlay=payload["overlay"],
            underlay=list(payload.get("underlay") or []),
            ethereum=payload.get("ethereum", ""),
            public_key=payload.get("publicKey", ""),
            pss_public_key=payload.get("pssPublicKey", ""),
        )

    def overlay(self, ctx: RunContext) -> str:
        return self.addresses(ctx).overlay

    def balances(self, ctx: RunContext) -> Dict[str, Balance]:
        payload = self._checked(ctx, "get", self.debug_api_url, "/balances").json()
        return {
            entry["peer"]: Balance(peer=entry["peer"], balance=int(entry["balance"]))
            for entry in payload.get("balances", []) or []
        }

    def peers(self, ctx: RunContext) -> List[str]:
        payload = self._checked(ctx, "get", self.debug_api_url, "/peers").json()
        return [entry["address"] for entry in payload.get("peers", []) or []]

    def settlements(self, ctx: RunContext) -> Settlements:
        payload = self._checked(ctx, "get", self.debug_api_url, "/settlements").json()
        entries = {
            entry["peer"]: Settlement(peer=entry["peer"], received=int(entry["received"]), sent=int(entry["sent"]))
            for entry in payload.get("settlements", []) or []
        }
        return Settlements(
            received=int(payload.get("totalReceived", 0)),
            sent=int(payload.get("totalSent", 0)),
            settlements=entries,
        )

    def topology(self, ctx: RunContext) -> Topology:
        payload = self._checked(ctx, "get", self.debug_api_url, "/topology").json()
        return Topology(
            overlay=payload.get("baseAddr", ""),
            population=int(payload.get("population", 0)),
            connected=int(payload.get("connected", 0)),
            depth=int(payload.get("depth", 0)),
            nn_low_watermark=int(payload.get("nnLowWatermark", 0)),
            bins=dict(payload.get("bins") or {}),
        )


def _tag_from_payload(payload: Dict[str, Any]) -> Tag:
    return Tag(
        uid=int(payload["uid"]),
        total=int(payload.get("total", 0)),
        split=int(payload.get("split", 0)),
        seen=int(payload.get("seen", 0)),
        stored=int(payload.get("stored", 0)),
        sent=int(payload.get("sent", 0)),
        synced=int(payload.get("synced", 0)),
    )
