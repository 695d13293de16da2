"""Interfaces and exchange buffers between elements on different partitions.

Key Classes:
    DistributedInterfaceContainer: Same-level faces whose neighbor is remote.
    DistributedCache: Per-neighbor-partition interface lists and buffers.

Key Functions:
    count_required_distributed_interfaces: Number of remote faces.
    init_distributed_interfaces: Fill the container in element order.
    init_distributed_cache: Size buffers and check counts with every neighbor.
    exchange_interface_data: Ship local face values, receive remote ones.

Note:
    Each partition sees a distributed interface from its own side, so the
    face appears once on both partitions. Both sides order the interfaces
    they share by a global interface id derived from the tree, which makes
    buffer positions match without further communication.
"""
import numpy as np

from ..amr.tree import is_positive_direction
from .base import Container
from .errors import DistributedConsistencyError, TopologyInvariantViolation
from .topology import FaceKind, classify_face, global_interface_id

DEFAULT_EXCHANGE_TIMEOUT = 30.0

TAG_INTERFACE_IDS = 1
TAG_SURFACE_DATA = 2


class DistributedInterfaceContainer(Container):
    """Storage for interfaces across partition boundaries.

    Attributes:
        local_neighbor_ids (ndarray): Local element of each interface, shape (n,).
        local_sides (ndarray): 0 if the local element lies on the negative
            side of the interface, 1 otherwise. Shape (n,).
        orientations (ndarray): Axis normal to the interface, shape (n,).
        faces (ndarray): Local face index of the local element, shape (n,).
        remote_partitions (ndarray): Partition owning the other side, shape (n,).
        remote_cell_ids (ndarray): Cell on the other side, shape (n,).
        global_ids (ndarray): Partition-independent face ids, shape (n,).
        u (ndarray): Face values of both sides, shape
            (2, nvariables, nnodes, ..., nnodes, n) with ndims - 1 node axes.
    """

    _array_fields = ("local_neighbor_ids", "local_sides", "orientations", "faces",
                     "remote_partitions", "remote_cell_ids", "global_ids", "u")

    def __init__(self, ndims, nvariables, nnodes, ninterfaces=0):
        super().__init__(ninterfaces)
        n = self._count
        self.local_neighbor_ids = np.full(n, -1, dtype=int)
        self.local_sides = np.full(n, -1, dtype=int)
        self.orientations = np.full(n, -1, dtype=int)
        self.faces = np.full(n, -1, dtype=int)
        self.remote_partitions = np.full(n, -1, dtype=int)
        self.remote_cell_ids = np.full(n, -1, dtype=int)
        self.global_ids = np.full(n, -1, dtype=int)
        self.u = np.zeros((2, nvariables) + (nnodes,) * (ndims - 1) + (n,))


def count_required_distributed_interfaces(tree, cell_ids, rank):
    count = 0
    for cell in cell_ids:
        for direction in range(tree.n_directions):
            if classify_face(tree, cell, direction, rank) is FaceKind.DISTRIBUTED_INTERFACE:
                count += 1
    return count


def init_distributed_interfaces(interfaces, elements, tree, rank):
    count = 0
    for element in elements.eachindex():
        cell = elements.cell_ids[element]
        for direction in range(tree.n_directions):
            if classify_face(tree, cell, direction, rank) is not FaceKind.DISTRIBUTED_INTERFACE:
                continue
            if count >= len(interfaces):
                raise TopologyInvariantViolation(
                    f"More distributed interfaces found than the {len(interfaces)} counted"
                )

            neighbor = tree.neighbor_ids[direction, cell]
            interfaces.local_neighbor_ids[count] = element
            interfaces.local_sides[count] = 0 if is_positive_direction(direction) else 1
            interfaces.orientations[count] = direction // 2
            interfaces.faces[count] = direction
            interfaces.remote_partitions[count] = tree.partitions[neighbor]
            interfaces.remote_cell_ids[count] = neighbor
            interfaces.global_ids[count] = global_interface_id(tree, cell, direction)
            count += 1

    if count != len(interfaces):
        raise TopologyInvariantViolation(
            f"Found {count} distributed interfaces, expected {len(interfaces)}"
        )


class DistributedCache:
    """Exchange state of one partition.

    Attributes:
        transport: Transport used for the exchange.
        rank (int): Partition owning this cache.
        timeout (float): Seconds to wait for a neighbor partition.
        neighbor_partitions (ndarray): Sorted partitions sharing interfaces.
        neighbor_interfaces (list): For each neighbor partition, the local
            interface ids shared with it, ordered by global interface id.
        send_buffers, recv_buffers (list): Flat float buffers per neighbor
            partition, sized len(neighbor_interfaces[i]) * data_size.
        data_size (int): Values per interface side, nvariables * nnodes^(ndims-1).
    """

    def __init__(self, transport, timeout=DEFAULT_EXCHANGE_TIMEOUT):
        self.transport = transport
        self.rank = transport.rank
        self.timeout = timeout
        self.neighbor_partitions = np.zeros(0, dtype=int)
        self.neighbor_interfaces = []
        self.send_buffers = []
        self.recv_buffers = []
        self.data_size = 0

    def n_interfaces(self):
        return sum(len(ids) for ids in self.neighbor_interfaces)

    def __eq__(self, other):
        if not isinstance(other, DistributedCache):
            return False
        return (self.rank == other.rank
                and self.data_size == other.data_size
                and np.array_equal(self.neighbor_partitions, other.neighbor_partitions)
                and len(self.neighbor_interfaces) == len(other.neighbor_interfaces)
                and all(np.array_equal(a, b) for a, b in zip(self.neighbor_interfaces,
                                                             other.neighbor_interfaces))
                and all(a.shape == b.shape for a, b in zip(self.send_buffers, other.send_buffers)))

    __hash__ = None


def _receive(cache, source, tag):
    try:
        return cache.transport.recv(source, tag=tag, timeout=cache.timeout)
    except TimeoutError as error:
        raise DistributedConsistencyError(
            f"Partition {cache.rank} timed out waiting for partition {source}: {error}"
        ) from error


def init_distributed_cache(cache, interfaces, nvariables, nnodes, ndims):
    """Group interfaces by neighbor partition, size buffers and rendezvous.

    Every neighbor partition is sent the sorted global ids of the shared
    interfaces and must send back the same ids.

    Args:
        cache: DistributedCache to fill.
        interfaces: Initialized DistributedInterfaceContainer.
        nvariables: Variables per node.
        nnodes: Nodes per direction.
        ndims: Spatial dimension.

    Raises:
        DistributedConsistencyError: If a neighbor reports different
            interfaces or does not answer in time.
    """
    cache.data_size = nvariables * nnodes**(ndims - 1)
    cache.neighbor_partitions = np.unique(interfaces.remote_partitions).astype(int)
    cache.neighbor_interfaces = []
    cache.send_buffers = []
    cache.recv_buffers = []

    for partition in cache.neighbor_partitions:
        ids = np.flatnonzero(interfaces.remote_partitions == partition)
        ids = ids[np.argsort(interfaces.global_ids[ids], kind='stable')]
        cache.neighbor_interfaces.append(ids)
        cache.send_buffers.append(np.zeros(len(ids) * cache.data_size))
        cache.recv_buffers.append(np.zeros(len(ids) * cache.data_size))

    for partition, ids in zip(cache.neighbor_partitions, cache.neighbor_interfaces):
        cache.transport.send(int(partition), interfaces.global_ids[ids], tag=TAG_INTERFACE_IDS)

    for partition, ids in zip(cache.neighbor_partitions, cache.neighbor_interfaces):
        remote_ids = np.asarray(_receive(cache, int(partition), TAG_INTERFACE_IDS))
        local_ids = interfaces.global_ids[ids]
        if len(remote_ids) != len(local_ids):
            raise DistributedConsistencyError(
                f"Partition {cache.rank} shares {len(local_ids)} interfaces with partition "
                f"{partition}, which reports {len(remote_ids)}"
            )
        if not np.array_equal(remote_ids, local_ids):
            raise DistributedConsistencyError(
                f"Partitions {cache.rank} and {partition} disagree on their shared interfaces"
            )


def exchange_interface_data(cache, interfaces):
    """Send local face values to neighbor partitions and fill the remote side.

    Args:
        cache: Initialized DistributedCache.
        interfaces: DistributedInterfaceContainer whose `u` holds the local
            side values. The remote side is overwritten.
    """
    face_shape = interfaces.u.shape[1:-1]
    size = cache.data_size

    for index, partition in enumerate(cache.neighbor_partitions):
        buffer = cache.send_buffers[index]
        for position, interface in enumerate(cache.neighbor_interfaces[index]):
            side = interfaces.local_sides[interface]
            buffer[position * size:(position + 1) * size] = interfaces.u[side, ..., interface].ravel()
        cache.transport.send(int(partition), buffer, tag=TAG_SURFACE_DATA)

    for index, partition in enumerate(cache.neighbor_partitions):
        data = np.asarray(_receive(cache, int(partition), TAG_SURFACE_DATA))
        buffer = cache.recv_buffers[index]
        if data.shape != buffer.shape:
            raise DistributedConsistencyError(
                f"Partition {cache.rank} expected {buffer.size} values from partition "
                f"{partition}, received {data.size}"
            )
        buffer[:] = data
        for position, interface in enumerate(cache.neighbor_interfaces[index]):
            side = 1 - interfaces.local_sides[interface]
            interfaces.u[side, ..., interface] = buffer[position * size:(position + 1) * size].reshape(face_shape)
