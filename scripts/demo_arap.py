#!/usr/bin/env python3
"""
Demo script for pyarap: load (or build) a mesh, pin two bands of vertices
along the x axis, bend one band around the y axis, run ARAP and export the
deformed mesh.

Usage:
  python scripts/demo_arap.py [--mesh PATH] [--outdir PATH] [--angle DEG] [--iters N]

If --mesh is not provided, an example plane grid is used.
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np
import trimesh as tm

from pyarap import ArapError, deform
from pyarap.mesh import example_mesh, load_mesh


def ensure_outdir(path: str) -> Path:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)
    return p


def pick_bands(V: np.ndarray, fraction: float) -> tuple[np.ndarray, np.ndarray]:
    """Vertices within ``fraction`` of the x extent from either end."""
    x = V[:, 0]
    lo, hi = float(x.min()), float(x.max())
    span = max(hi - lo, 1e-12)
    left = np.flatnonzero(x <= lo + fraction * span)
    right = np.flatnonzero(x >= hi - fraction * span)
    return left, right


def bend(points: np.ndarray, pivot: np.ndarray, angle_deg: float) -> np.ndarray:
    M = tm.transformations.rotation_matrix(np.deg2rad(angle_deg), [0.0, 1.0, 0.0], point=pivot)
    return tm.transform_points(points, M)


def main():
    ap = argparse.ArgumentParser(description="pyarap demo: bend a mesh with as-rigid-as-possible deformation")
    ap.add_argument("--mesh", type=str, default=None, help="Path to input mesh. If omitted, use an example plane grid")
    ap.add_argument("--outdir", type=str, default="outputs/demo", help="Directory to write outputs")
    ap.add_argument("--band", type=float, default=0.1, help="Fraction of the x extent pinned at each end")
    ap.add_argument("--angle", type=float, default=45.0, help="Bend angle of the right band in degrees")
    ap.add_argument("--iters", type=int, default=None, help="Maximum ARAP iterations")
    ap.add_argument("--tol", type=float, default=None, help="Energy-delta stopping tolerance")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    if args.mesh:
        m = load_mesh(args.mesh)
    else:
        m = example_mesh("plane", rows=8, cols=24)
        m.apply_scale([3.0, 1.0, 1.0])
    print(f"Loaded mesh: {len(m.vertices)} vertices, {len(m.faces)} faces")

    outdir = ensure_outdir(args.outdir)

    V = np.asarray(m.vertices, dtype=float)
    left, right = pick_bands(V, args.band)
    if left.size == 0 or right.size == 0:
        print("Could not find vertices to pin at both ends of the mesh.")
        sys.exit(1)

    pivot = V[right].mean(axis=0)
    pivot[0] = V[right, 0].min()
    fixed = np.concatenate([left, right])
    targets = np.concatenate([V[left], bend(V[right], pivot, args.angle)])

    try:
        res = deform(m, fixed, targets, iterations=args.iters, tolerance=args.tol, verbose=True)
    except ArapError as e:
        print(f"ARAP failed: {e}")
        sys.exit(1)

    print(f"ARAP: {res.iterations} iterations, converged={res.converged}")
    print(f"Energy: initial {res.energies[0]:.6g}, final {res.energies[-1]:.6g}")

    out = tm.Trimesh(vertices=res.vertices, faces=m.faces, process=False)
    out_path = outdir / "deformed.obj"
    out.export(str(out_path))
    print(f"Wrote mesh: {out_path}")


if __name__ == "__main__":
    main()
