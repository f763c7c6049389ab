"""In-memory stand-ins for storage nodes, shared by the test modules."""

from __future__ import annotations

import hashlib
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional

from fleet_check.cluster import Cluster
from fleet_check.config import ClusterOptions, NodeConfig, NodeGroupOptions
from fleet_check.errors import NodeAPIError
from fleet_check.models import Addresses, Balance, DownloadedFile, Settlement, Settlements, Tag, Topology, content_hash


def overlay_of(name: str) -> str:
    return hashlib.sha256(name.encode()).hexdigest()


class FakeSwarm:
    """Shared content store; clients built per node read and write through it."""

    def __init__(self) -> None:
        self.store: Dict[str, bytes] = {}
        self.holders: Dict[str, set] = defaultdict(set)
        self.failures: Dict[str, set] = defaultdict(set)
        self.corrupt: set = set()
        self.hooks: Dict[str, Callable[[str], None]] = {}
        self.calls: List[tuple] = []
        self.batches: List[tuple] = []
        self._tag_seq = 0

    def client_factory(self, node) -> "FakeNodeClient":
        return FakeNodeClient(node.name, self)

    def fail(self, op: str, *nodes: str) -> None:
        self.failures[op].update(nodes)

    def calls_to(self, op: str) -> List[str]:
        return [node for name, node in self.calls if name == op]

    def enter(self, op: str, node: str) -> None:
        self.calls.append((op, node))
        hook = self.hooks.get(op)
        if hook is not None:
            hook(node)
        if node in self.failures[op]:
            raise NodeAPIError(node, f"{op} failed")

    def next_tag(self) -> int:
        self._tag_seq += 1
        return self._tag_seq


class FakeNodeClient:
    def __init__(self, name: str, swarm: FakeSwarm) -> None:
        self.name = name
        self.swarm = swarm

    def _store(self, data: bytes) -> str:
        address = hashlib.sha3_256(data).hexdigest()
        self.swarm.store[address] = data
        self.swarm.holders[address].add(self.name)
        return address

    def _load(self, address: str) -> bytes:
        try:
            data = self.swarm.store[address]
        except KeyError:
            raise NodeAPIError(self.name, f"{address} not found", status_code=404) from None
        if self.name in self.swarm.corrupt:
            return data[:-1]
        return data

    def upload_file(self, ctx, data, batch_id, *, name=None, tag=None):
        self.swarm.enter("upload_file", self.name)
        return self._store(data)

    def upload_chunk(self, ctx, data, batch_id, *, tag=None):
        self.swarm.enter("upload_chunk", self.name)
        return self._store(data)

    def download_file(self, ctx, address):
        self.swarm.enter("download_file", self.name)
        data = self._load(address)
        return DownloadedFile(size=len(data), hash=content_hash(data), data=data)

    def download_chunk(self, ctx, address):
        self.swarm.enter("download_chunk", self.name)
        return self._load(address)

    def create_postage_batch(self, ctx, amount, depth, label):
        self.swarm.enter("create_postage_batch", self.name)
        self.swarm.batches.append((self.name, amount, depth, label))
        return f"batch-{self.name}-{len(self.swarm.batches)}"

    def get_or_create_batch(self, ctx, amount, depth, label):
        self.swarm.enter("get_or_create_batch", self.name)
        return f"batch-{self.name}-{label}"

    def create_tag(self, ctx):
        self.swarm.enter("create_tag", self.name)
        return Tag(uid=self.swarm.next_tag())

    def wait_sync(self, ctx, uid):
        self.swarm.enter("wait_sync", self.name)

    def has_chunk(self, ctx, address):
        self.swarm.enter("has_chunk", self.name)
        return self.name in self.swarm.holders.get(address, set())

    def addresses(self, ctx):
        self.swarm.enter("addresses", self.name)
        return Addresses(overlay=overlay_of(self.name), underlay=[f"/dns4/{self.name}/tcp/1634"])

    def overlay(self, ctx):
        self.swarm.enter("overlay", self.name)
        return overlay_of(self.name)

    def balances(self, ctx):
        self.swarm.enter("balances", self.name)
        return {"peer-x": Balance(peer="peer-x", balance=len(self.name))}

    def peers(self, ctx):
        self.swarm.enter("peers", self.name)
        return [overlay_of("peer-x")]

    def settlements(self, ctx):
        self.swarm.enter("settlements", self.name)
        return Settlements(received=1, sent=2, settlements={"peer-x": Settlement(peer="peer-x", received=1, sent=2)})

    def topology(self, ctx):
        self.swarm.enter("topology", self.name)
        return Topology(overlay=overlay_of(self.name), population=3, connected=2, depth=1)


def make_cluster(
    swarm: FakeSwarm,
    groups: Dict[str, Iterable[str]],
    *,
    orchestrator=None,
    light: Iterable[str] = (),
    **options,
) -> Cluster:
    cluster = Cluster(
        "test",
        ClusterOptions(**options),
        orchestrator=orchestrator,
        client_factory=swarm.client_factory,
    )
    light_groups = set(light)
    for group_name, names in groups.items():
        group_options = NodeGroupOptions(node_config=NodeConfig(full_node=group_name not in light_groups))
        group = cluster.add_node_group(group_name, group_options)
        for name in names:
            group.add_node(name)
    return cluster


def cancel_after(ctx, calls: int, counter: Optional[List[int]] = None) -> Callable[[str], None]:
    """Hook that cancels ``ctx`` on the ``calls``-th invocation."""
    seen = counter if counter is not None else [0]

    def hook(node: str) -> None:
        seen[0] += 1
        if seen[0] >= calls:
            ctx.cancel()

    return hook
