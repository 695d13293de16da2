"""Point-to-point messaging between mesh partitions.

The distributed containers only need blocking send/receive keyed by
partition id and a message tag. `Transport` is that interface; an MPI
binding or any other transport implements it. `InProcessNetwork` connects
partitions living in one process (e.g. one thread per partition), which is
how the distributed code paths are exercised in tests.

Key Classes:
    Transport: Interface used by the distributed cache.
    InProcessNetwork: Mailboxes shared by a set of in-process partitions.
    InProcessTransport: One partition's endpoint on an InProcessNetwork.

Key Functions:
    is_parallel: True if a transport spans more than one partition.
"""
import queue
import threading

import numpy as np


class Transport:
    """Messaging endpoint of one partition.

    Attributes:
        rank (int): Partition id of this endpoint.
        size (int): Number of partitions.
    """

    rank = 0
    size = 1

    def send(self, dest: int, payload, tag: int = 0):
        raise NotImplementedError

    def recv(self, source: int, tag: int = 0, timeout=None):
        """Receive the next message from `source` with `tag`.

        Raises:
            TimeoutError: If nothing arrives within `timeout` seconds.
        """
        raise NotImplementedError


def is_parallel(transport):
    return transport is not None and transport.size > 1


class InProcessNetwork:
    """Message queues between `size` partitions of the same process.

    Every (source, dest, tag) triple has its own FIFO queue, so messages
    between two partitions arrive in the order they were sent.
    """

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"Network size must be positive, got {size}")
        self.size = size
        self._mailboxes = {}
        self._lock = threading.Lock()

    def mailbox(self, source, dest, tag):
        with self._lock:
            return self._mailboxes.setdefault((source, dest, tag), queue.Queue())

    def transport(self, rank: int):
        if not 0 <= rank < self.size:
            raise ValueError(f"Rank {rank} out of range for network of size {self.size}")
        return InProcessTransport(self, rank)

    def transports(self):
        return [self.transport(rank) for rank in range(self.size)]


class InProcessTransport(Transport):
    def __init__(self, network, rank):
        self.network = network
        self.rank = rank
        self.size = network.size

    def _check_peer(self, peer):
        if not 0 <= peer < self.size:
            raise ValueError(f"Partition {peer} out of range for {self.size} partitions")

    def send(self, dest, payload, tag=0):
        self._check_peer(dest)
        # Copy so the sender may reuse its buffer right away
        self.network.mailbox(self.rank, dest, tag).put(np.array(payload, copy=True))

    def recv(self, source, tag=0, timeout=None):
        self._check_peer(source)
        try:
            return self.network.mailbox(source, self.rank, tag).get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError(
                f"Partition {self.rank} received nothing from partition {source} "
                f"(tag {tag}) within {timeout} s"
            ) from None

    def __repr__(self):
        return f"InProcessTransport(rank={self.rank}, size={self.size})"
