"""
Geometry primitives for anchor placement.

Convention: +y is up, a camera looks along its local +z and local +x is
viewport-right. Orientations are unit quaternions (w, x, y, z).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Collection, Dict, List, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

EPS = 1e-9
EDGE_EPS = 1e-9  # barycentric slack on shared triangle edges
WORLD_UP = np.array([0.0, 1.0, 0.0])
IDENTITY_QUATERNION = np.array([1.0, 0.0, 0.0, 0.0])
DEFAULT_LAYER = "scene_mesh"


def as_vector(value: Sequence[float]) -> np.ndarray:
    arr = np.asarray(value, dtype=np.float64).reshape(-1)
    if arr.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {arr.shape}")
    return arr


def normalize(v: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(v)
    if norm < EPS:
        return np.zeros_like(v, dtype=np.float64)
    return v / norm


# === Quaternions ===

def quaternion_to_matrix(q: Sequence[float]) -> np.ndarray:
    w, x, y, z = normalize(np.asarray(q, dtype=np.float64))
    return np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
        [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
        [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
    ])


def quaternion_from_matrix(m: np.ndarray) -> np.ndarray:
    """Rotation matrix -> quaternion with w >= 0."""
    m = np.asarray(m, dtype=np.float64)
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0:
        s = 2.0 * np.sqrt(trace + 1.0)
        q = [0.25 * s, (m[2, 1] - m[1, 2]) / s, (m[0, 2] - m[2, 0]) / s, (m[1, 0] - m[0, 1]) / s]
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = 2.0 * np.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2])
        q = [(m[2, 1] - m[1, 2]) / s, 0.25 * s, (m[0, 1] + m[1, 0]) / s, (m[0, 2] + m[2, 0]) / s]
    elif m[1, 1] > m[2, 2]:
        s = 2.0 * np.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2])
        q = [(m[0, 2] - m[2, 0]) / s, (m[0, 1] + m[1, 0]) / s, 0.25 * s, (m[1, 2] + m[2, 1]) / s]
    else:
        s = 2.0 * np.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1])
        q = [(m[1, 0] - m[0, 1]) / s, (m[0, 2] + m[2, 0]) / s, (m[1, 2] + m[2, 1]) / s, 0.25 * s]
    q = normalize(np.asarray(q))
    return -q if q[0] < 0 else q


def rotate_vector(q: Sequence[float], v: Sequence[float]) -> np.ndarray:
    return quaternion_to_matrix(q) @ np.asarray(v, dtype=np.float64)


def look_rotation(forward: Sequence[float], up: Sequence[float] = WORLD_UP) -> np.ndarray:
    """
    Rotation whose local +z points along forward and local +y toward up.

    Falls back to another up axis when forward is parallel to up.
    """
    f = normalize(np.asarray(forward, dtype=np.float64))
    if not f.any():
        return IDENTITY_QUATERNION.copy()

    right = np.cross(np.asarray(up, dtype=np.float64), f)
    if np.linalg.norm(right) < 1e-6:
        alt_up = np.array([0.0, 0.0, 1.0]) if abs(f[2]) < 0.9 else np.array([1.0, 0.0, 0.0])
        right = np.cross(alt_up, f)
    right = normalize(right)
    true_up = np.cross(f, right)
    return quaternion_from_matrix(np.column_stack([right, true_up, f]))


# === Rays ===

@dataclass
class Ray:
    origin: np.ndarray
    direction: np.ndarray

    def __post_init__(self):
        self.origin = as_vector(self.origin)
        self.direction = normalize(as_vector(self.direction))

    def point_at(self, distance: float) -> np.ndarray:
        return self.origin + self.direction * distance


@dataclass
class RayHit:
    """Nearest intersection reported by a ray caster."""
    point: np.ndarray
    normal: np.ndarray
    distance: float
    collider: str = ""

    def __post_init__(self):
        self.point = as_vector(self.point)
        self.normal = normalize(as_vector(self.normal))
        self.distance = float(self.distance)


class RayCaster(ABC):
    """Environment geometry query."""

    @abstractmethod
    def raycast(
        self,
        ray: Ray,
        max_distance: float,
        geometry_filter: Optional[Collection[str]] = None,
    ) -> Optional[RayHit]:
        """Nearest hit within max_distance, or None."""
        pass


# === Camera ===

@dataclass
class PinholeCamera:
    """
    Observer pose plus projection.

    fov_deg is the vertical field of view; aspect is width / height.
    """
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    orientation: np.ndarray = field(default_factory=lambda: IDENTITY_QUATERNION.copy())
    fov_deg: float = 60.0
    aspect: float = 16.0 / 9.0

    def __post_init__(self):
        self.position = as_vector(self.position)
        q = normalize(np.asarray(self.orientation, dtype=np.float64).reshape(-1))
        if q.shape != (4,) or not q.any():
            raise ValueError(f"Invalid orientation quaternion: {self.orientation}")
        self.orientation = q
        if not 0 < self.fov_deg < 180:
            raise ValueError(f"fov_deg must be in (0, 180), got {self.fov_deg}")
        if self.aspect <= 0:
            raise ValueError(f"aspect must be positive, got {self.aspect}")

    @classmethod
    def look_at(
        cls,
        position: Sequence[float],
        target: Sequence[float],
        up: Sequence[float] = WORLD_UP,
        fov_deg: float = 60.0,
        aspect: float = 16.0 / 9.0,
    ) -> 'PinholeCamera':
        position = as_vector(position)
        orientation = look_rotation(as_vector(target) - position, up)
        return cls(position=position, orientation=orientation, fov_deg=fov_deg, aspect=aspect)

    @property
    def rotation_matrix(self) -> np.ndarray:
        return quaternion_to_matrix(self.orientation)

    @property
    def forward(self) -> np.ndarray:
        return self.rotation_matrix[:, 2]

    @property
    def up(self) -> np.ndarray:
        return self.rotation_matrix[:, 1]

    @property
    def right(self) -> np.ndarray:
        return self.rotation_matrix[:, 0]

    def _half_extents(self) -> Tuple[float, float]:
        tan_half = np.tan(np.radians(self.fov_deg) / 2.0)
        return tan_half * self.aspect, tan_half

    def viewport_point_to_ray(self, u: float, v: float) -> Ray:
        """Ray from the camera origin through viewport (u, v), origin bottom-left."""
        half_w, half_h = self._half_extents()
        local = np.array([(2.0 * u - 1.0) * half_w, (2.0 * v - 1.0) * half_h, 1.0])
        return Ray(self.position.copy(), self.rotation_matrix @ local)

    def world_to_viewport_point(self, point: Sequence[float]) -> np.ndarray:
        """(u, v, depth) of a world point; u, v are NaN behind the camera."""
        local = self.rotation_matrix.T @ (as_vector(point) - self.position)
        depth = local[2]
        if depth <= EPS:
            return np.array([np.nan, np.nan, depth])
        half_w, half_h = self._half_extents()
        u = (local[0] / depth / half_w + 1.0) / 2.0
        v = (local[1] / depth / half_h + 1.0) / 2.0
        return np.array([u, v, depth])


# === Triangle meshes ===

@dataclass
class SceneMesh:
    name: str
    vertices: np.ndarray
    triangles: np.ndarray
    layer: str = DEFAULT_LAYER

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=np.float64)
        self.triangles = np.asarray(self.triangles, dtype=np.int64)
        if self.vertices.ndim != 2 or self.vertices.shape[1] != 3:
            raise ValueError(f"Mesh '{self.name}': vertices must be (N, 3), got {self.vertices.shape}")
        if self.triangles.ndim != 2 or self.triangles.shape[1] != 3:
            raise ValueError(f"Mesh '{self.name}': triangles must be (M, 3), got {self.triangles.shape}")
        if self.triangles.size and (
            self.triangles.min() < 0 or self.triangles.max() >= len(self.vertices)
        ):
            raise ValueError(f"Mesh '{self.name}': triangle index out of range")


def _intersect_mesh(ray: Ray, mesh: SceneMesh, max_distance: float) -> Optional[RayHit]:
    """Vectorized Moller-Trumbore; two-sided, normal faces the ray origin."""
    if mesh.triangles.size == 0:
        return None

    v0 = mesh.vertices[mesh.triangles[:, 0]]
    e1 = mesh.vertices[mesh.triangles[:, 1]] - v0
    e2 = mesh.vertices[mesh.triangles[:, 2]] - v0
    d = ray.direction

    p = np.cross(d, e2)
    det = np.einsum("ij,ij->i", e1, p)
    valid = np.abs(det) > EPS
    inv_det = np.zeros_like(det)
    inv_det[valid] = 1.0 / det[valid]

    s = ray.origin - v0
    u = np.einsum("ij,ij->i", s, p) * inv_det
    q = np.cross(s, e1)
    v = (q @ d) * inv_det
    t = np.einsum("ij,ij->i", e2, q) * inv_det

    inside = (u >= -EDGE_EPS) & (v >= -EDGE_EPS) & (u + v <= 1 + EDGE_EPS)
    mask = valid & inside & (t > EPS) & (t <= max_distance)
    if not mask.any():
        return None

    candidates = np.flatnonzero(mask)
    i = candidates[np.argmin(t[candidates])]
    normal = normalize(np.cross(e1[i], e2[i]))
    if np.dot(normal, d) > 0:
        normal = -normal
    return RayHit(point=ray.point_at(t[i]), normal=normal, distance=t[i], collider=mesh.name)


class MeshRaycaster(RayCaster):
    """
    Ray caster over named triangle meshes, each tagged with a layer.

    Example:
        scene = MeshRaycaster()
        scene.add_plane("wall", center=(0, 1, 2), normal=(0, 0, -1), width=4, height=3)
        hit = scene.raycast(camera.viewport_point_to_ray(0.5, 0.5), max_distance=5.0)
    """

    def __init__(self):
        self._meshes: Dict[str, SceneMesh] = {}

    @property
    def meshes(self) -> List[SceneMesh]:
        return list(self._meshes.values())

    def __len__(self) -> int:
        return len(self._meshes)

    def add_mesh(
        self,
        name: str,
        vertices: Sequence[Sequence[float]],
        triangles: Sequence[Sequence[int]],
        layer: str = DEFAULT_LAYER,
    ) -> SceneMesh:
        """Add or replace a mesh."""
        mesh = SceneMesh(name, vertices, triangles, layer)
        if name in self._meshes:
            logger.info(f"[Scene] Replacing mesh '{name}'")
        self._meshes[name] = mesh
        return mesh

    def add_plane(
        self,
        name: str,
        center: Sequence[float],
        normal: Sequence[float],
        width: float,
        height: float,
        up_hint: Sequence[float] = WORLD_UP,
        layer: str = DEFAULT_LAYER,
    ) -> SceneMesh:
        """Add a width x height rectangle (two triangles) facing along normal."""
        c = as_vector(center)
        n = normalize(as_vector(normal))
        if not n.any():
            raise ValueError(f"Plane '{name}': normal must be non-zero")

        right = np.cross(as_vector(up_hint), n)
        if np.linalg.norm(right) < 1e-6:
            right = np.cross(np.array([0.0, 0.0, 1.0]), n)
        right = normalize(right) * (width / 2.0)
        up = normalize(np.cross(n, right)) * (height / 2.0)

        vertices = [c - right - up, c + right - up, c + right + up, c - right + up]
        return self.add_mesh(name, vertices, [[0, 1, 2], [0, 2, 3]], layer)

    def remove_mesh(self, name: str) -> bool:
        return self._meshes.pop(name, None) is not None

    def clear(self) -> None:
        self._meshes = {}

    def raycast(
        self,
        ray: Ray,
        max_distance: float,
        geometry_filter: Optional[Collection[str]] = None,
    ) -> Optional[RayHit]:
        best: Optional[RayHit] = None
        for mesh in self._meshes.values():
            if geometry_filter is not None and mesh.layer not in geometry_filter:
                continue
            hit = _intersect_mesh(ray, mesh, max_distance)
            if hit is not None and (best is None or hit.distance < best.distance):
                best = hit
        return best
