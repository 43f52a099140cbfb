"""
Mesh helpers for demos and tests
"""

import logging
from typing import Optional

import numpy as np
import trimesh

# Module-level logger
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def plane_grid(
    rows: int = 4,
    cols: int = 4,
    *,
    width: float = 1.0,
    height: float = 1.0,
) -> trimesh.Trimesh:
    """Flat grid in the z=0 plane split into right triangles.

    Vertex ``r * (cols + 1) + c`` sits at ``(c * width / cols, r * height / rows, 0)``.
    Every cell is cut along the same diagonal, so with square cells all
    cotangent weights are non-negative.
    """
    if rows < 1 or cols < 1:
        raise ValueError("plane_grid needs at least one row and one column")
    xs = np.linspace(0.0, float(width), cols + 1)
    ys = np.linspace(0.0, float(height), rows + 1)
    X, Y = np.meshgrid(xs, ys)
    V = np.column_stack([X.ravel(), Y.ravel(), np.zeros(X.size)])

    r, c = np.meshgrid(np.arange(rows), np.arange(cols), indexing="ij")
    v00 = (r * (cols + 1) + c).ravel()
    v10 = v00 + 1
    v01 = v00 + cols + 1
    v11 = v01 + 1
    F = np.concatenate(
        [np.column_stack([v00, v10, v11]), np.column_stack([v00, v11, v01])],
        axis=0,
    )
    return trimesh.Trimesh(vertices=V, faces=F, process=False)


def example_mesh(
    kind: str = "plane",
    *,
    # Plane params
    rows: int = 8,
    cols: int = 8,
    # Cylinder params
    radius: float = 0.5,
    height: float = 2.0,
    sections: int | None = 32,
    # Torus params
    major_radius: float = 1.0,
    minor_radius: float = 0.3,
    major_sections: int | None = 32,
    minor_sections: int | None = 16,
    # Common
    transform: np.ndarray | None = None,
    **kwargs,
) -> trimesh.Trimesh:
    """Create a simple demo mesh.

    Parameters
    ----------
    kind : {"plane", "cylinder", "torus"}
        Type of primitive to generate. Default "plane".
    rows, cols : int
        Grid resolution (when kind="plane"). Default 8 x 8 cells on the unit square.
    radius : float
        Cylinder radius (when kind="cylinder"). Default 0.5.
    height : float
        Cylinder height (when kind="cylinder"). Default 2.0.
    sections : int or None
        Cylinder radial resolution (pie wedges). Default 32.
    major_radius : float
        Torus major radius (center of hole to centerline of tube). Default 1.0.
    minor_radius : float
        Torus minor radius (tube radius). Default 0.3.
    major_sections : int or None
        Torus resolution around major circle. Default 32.
    minor_sections : int or None
        Torus resolution around tube section. Default 16.
    transform : (4,4) float array, optional
        Transform applied after creation.
    **kwargs : dict
        Passed through to trimesh.creation.* helpers (e.g., process=False).

    Returns
    -------
    trimesh.Trimesh
        Generated primitive mesh.

    Examples
    --------
    >>> m = example_mesh("plane", rows=4, cols=12)
    >>> t = example_mesh("torus", major_radius=1.0, minor_radius=0.25)
    """
    k = (kind or "plane").lower()
    if k == "plane":
        mesh = plane_grid(int(rows), int(cols))
        if transform is not None:
            mesh.apply_transform(transform)
        return mesh
    elif k == "cylinder":
        return trimesh.creation.cylinder(
            radius=float(radius),
            height=float(height),
            sections=None if sections is None else int(sections),
            transform=transform,
            **kwargs,
        )
    elif k == "torus":
        return trimesh.creation.torus(
            major_radius=float(major_radius),
            minor_radius=float(minor_radius),
            major_sections=None if major_sections is None else int(major_sections),
            minor_sections=None if minor_sections is None else int(minor_sections),
            transform=transform,
            **kwargs,
        )
    else:
        raise ValueError("example_mesh kind must be 'plane', 'cylinder' or 'torus'")


def load_mesh(filepath: str, file_format: Optional[str] = None) -> trimesh.Trimesh:
    """
    Load a single triangle mesh from file.

    Args:
        filepath: Path to mesh file
        file_format: Optional format specification (auto-detected if None)

    Returns:
        Loaded trimesh object
    """
    if file_format:
        mesh = trimesh.load(filepath, file_type=file_format, process=False)
    else:
        mesh = trimesh.load(filepath, process=False)

    # Ensure we have a single mesh
    if isinstance(mesh, trimesh.Scene):
        geometries = list(mesh.geometry.values())
        if geometries:
            mesh = geometries[0]
        else:
            raise ValueError("No geometry found in mesh scene")

    if not isinstance(mesh, trimesh.Trimesh):
        raise ValueError(f"Loaded object is not a mesh: {type(mesh)}")

    logger.info("Loaded mesh: %d vertices, %d faces", len(mesh.vertices), len(mesh.faces))
    return mesh
