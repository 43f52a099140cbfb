"""
Mesh topology and Fixed/Free vertex classification.
"""
from __future__ import annotations

import logging
from typing import Sequence

import networkx as nx
import numpy as np

from .errors import ConfigurationError
from .laplacian import directed_edges

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class MeshTopology:
    """
    Triangle mesh with a Fixed/Free partition of its vertices.

    Fixed vertices keep the order in which they were given; that order defines
    the rows of the fixed-target table passed to the solver. Free vertices are
    numbered in ascending vertex order and index the reduced linear system.

    Attributes
    ----------
    vertices : (n,3) float array
        Original positions, read-only.
    faces : (m,3) int array
        Triangles, read-only.
    fixed : (k,) int array
        Vertex index of each fixed-target row.
    free : (n-k,) int array
        Vertex index of each reduced-system row.
    compact : (n,) int array
        Row of every vertex inside its own role's index space.
    is_fixed : (n,) bool array
    """

    def __init__(self, vertices: np.ndarray, faces: np.ndarray, fixed: Sequence[int] | np.ndarray):
        V = np.array(vertices, dtype=np.float64)
        F = np.array(faces, dtype=np.int64)
        if V.ndim != 2 or V.shape[1] != 3:
            raise ValueError(f"vertices must have shape (n,3), got {V.shape}")
        if F.size == 0:
            F = F.reshape(0, 3)
        if F.ndim != 2 or F.shape[1] != 3:
            raise ValueError(f"faces must have shape (m,3), got {F.shape}")
        n = V.shape[0]
        if F.size and (F.min() < 0 or F.max() >= n):
            raise ValueError("faces reference vertex indices out of range")

        fixed_arr = np.asarray(fixed, dtype=np.int64).ravel()
        if fixed_arr.size and (fixed_arr.min() < 0 or fixed_arr.max() >= n):
            raise ConfigurationError("fixed vertex indices out of range")
        if np.unique(fixed_arr).size != fixed_arr.size:
            raise ConfigurationError("fixed vertex indices must be unique")

        is_fixed = np.zeros(n, dtype=bool)
        is_fixed[fixed_arr] = True
        free_arr = np.flatnonzero(~is_fixed)
        if free_arr.size == 0:
            raise ConfigurationError("no free vertices: every vertex is fixed")

        compact = np.empty(n, dtype=np.int64)
        compact[fixed_arr] = np.arange(fixed_arr.size)
        compact[free_arr] = np.arange(free_arr.size)

        V.setflags(write=False)
        F.setflags(write=False)
        self.vertices = V
        self.faces = F
        self.fixed = fixed_arr
        self.free = free_arr
        self.compact = compact
        self.is_fixed = is_fixed

    @property
    def num_vertices(self) -> int:
        return self.vertices.shape[0]

    @property
    def num_faces(self) -> int:
        return self.faces.shape[0]

    @property
    def num_fixed(self) -> int:
        return self.fixed.shape[0]

    @property
    def num_free(self) -> int:
        return self.free.shape[0]

    def vertex_graph(self) -> nx.Graph:
        """Undirected edge graph over all vertices, isolated ones included."""
        G = nx.Graph()
        G.add_nodes_from(range(self.num_vertices))
        E = directed_edges(self.faces)
        G.add_edges_from(map(tuple, E[E[:, 0] < E[:, 1]].tolist()))
        return G

    def unconstrained_components(self) -> list[set[int]]:
        """Connected components that contain no fixed vertex.

        Any such component leaves the reduced system singular, because the
        component can translate freely.
        """
        G = self.vertex_graph()
        return [c for c in nx.connected_components(G) if not any(self.is_fixed[v] for v in c)]

    def __repr__(self) -> str:
        return (
            f"MeshTopology(vertices={self.num_vertices}, faces={self.num_faces}, "
            f"fixed={self.num_fixed}, free={self.num_free})"
        )
