"""Data models shared by the topology model and the verification engine."""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field
from typing import Dict, List, Optional

MAX_CHUNK_SIZE = 4096
SPAN_SIZE = 8


def content_hash(data: bytes) -> bytes:
    return hashlib.sha3_256(data).digest()


def chunk_address(span: int, payload: bytes) -> str:
    """Local content address for a chunk: hash over the little-endian span and payload.

    Nodes return their own reference on upload; downloads always use that
    reference, so this value is only used for logging and labels.
    """
    return hashlib.sha3_256(struct.pack("<Q", span) + payload).hexdigest()


@dataclass
class Chunk:
    payload: bytes

    def __post_init__(self) -> None:
        if len(self.payload) > MAX_CHUNK_SIZE:
            raise ValueError(f"chunk payload exceeds {MAX_CHUNK_SIZE} bytes")

    @property
    def span(self) -> int:
        return len(self.payload)

    @property
    def data(self) -> bytes:
        return struct.pack("<Q", self.span) + self.payload

    @property
    def address(self) -> str:
        return chunk_address(self.span, self.payload)

    def size(self) -> int:
        return len(self.payload)


@dataclass
class File:
    name: str
    data: bytes
    address: Optional[str] = None

    @property
    def hash(self) -> bytes:
        return content_hash(self.data)

    def size(self) -> int:
        return len(self.data)


@dataclass
class DownloadedFile:
    size: int
    hash: bytes
    data: bytes = b""


@dataclass
class Tag:
    uid: int
    total: int = 0
    split: int = 0
    seen: int = 0
    stored: int = 0
    sent: int = 0
    synced: int = 0


@dataclass
class Addresses:
    overlay: str
    underlay: List[str] = field(default_factory=list)
    ethereum: str = ""
    public_key: str = ""
    pss_public_key: str = ""


@dataclass
class Balance:
    peer: str
    balance: int


@dataclass
class Settlement:
    peer: str
    received: int
    sent: int


@dataclass
class Settlements:
    received: int = 0
    sent: int = 0
    settlements: Dict[str, Settlement] = field(default_factory=dict)


@dataclass
class Topology:
    overlay: str
    population: int = 0
    connected: int = 0
    depth: int = 0
    nn_low_watermark: int = 0
    bins: Dict[str, dict] = field(default_factory=dict)
