"""
Armor mesh geometry for the naval gunnery simulator.

A target's armor is a flat list of triangles (ArmorFace), each carrying a
plate thickness and an armor class. This module implements the ray
primitives the penetration model walks the mesh with:
- Face normals from vertex winding
- Reflection of a shell direction off a face
- Moller-Trumbore ray/triangle intersection with obliquity angle
- Nearest intersection along a ray across the whole mesh

Obliquity convention: 0 deg is a grazing hit, 90 deg is perpendicular.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence

from .physics import Vector3D


# =============================================================================
# CONSTANTS
# =============================================================================

# Rays whose direction is this close to the triangle plane never hit it
PARALLEL_EPSILON = 1e-5

# Hits closer than this to the ray origin are the face the ray starts on
SELF_INTERSECTION_EPSILON = 1e-5

# Material type ids in the armor model data
CITADEL_MATERIAL_IDS = range(59, 68)
TORPEDO_BELT_MATERIAL_ID = 101


class ArmorType(Enum):
    """Armor classes that change how a penetrating shell does damage."""
    NORMAL = "normal"
    CITADEL = "citadel"
    TORPEDO_PROTECTION_BELT = "torpedo_protection_belt"

    @classmethod
    def from_id(cls, material_id: int) -> ArmorType:
        """Map an armor model material type id to an armor class."""
        if material_id in CITADEL_MATERIAL_IDS:
            return cls.CITADEL
        if material_id == TORPEDO_BELT_MATERIAL_ID:
            return cls.TORPEDO_PROTECTION_BELT
        return cls.NORMAL


@dataclass(frozen=True)
class Intersection:
    """
    A ray hitting an armor face.

    Attributes:
        t: Distance along the ray (in units of the direction length).
        angle_deg: Obliquity, 0 (grazing) to 90 (perpendicular).
        point: World-space hit point.
    """
    t: float
    angle_deg: float
    point: Vector3D


@dataclass(frozen=True, eq=False)
class ArmorFace:
    """
    One armored triangle of a target mesh.

    The normal is derived from the vertex order, so ingested meshes must use
    a consistent winding. Faces compare and hash by identity: two plates with
    the same corners are still distinct mesh elements.

    Attributes:
        vertices: The three corners in world space.
        thickness_mm: Plate thickness.
        armor_type: Armor class of the plate.
    """
    vertices: tuple[Vector3D, Vector3D, Vector3D]
    thickness_mm: float
    armor_type: ArmorType = ArmorType.NORMAL

    def normal(self) -> Vector3D:
        """Unit normal (v1 - v0) x (v2 - v0)."""
        v0, v1, v2 = self.vertices
        return (v1 - v0).cross(v2 - v0).normalized()

    def reflect(self, incoming: Vector3D) -> Vector3D:
        """
        Mirror a shell direction off this face.

        Works from either side of the plate: the normal is flipped to oppose
        the incoming ray before applying v' = v - 2(v.n)n to the reversed
        incoming direction.

        Args:
            incoming: Direction of travel before the hit.

        Returns:
            Unit direction after reflection.
        """
        v = (-incoming).normalized()
        n = self.normal()
        if v.dot(n) < 0.0:
            n = -n
        reflected = v - n * (2.0 * v.dot(n))
        return reflected.normalized()

    def intersect(self, origin: Vector3D, direction: Vector3D) -> Optional[Intersection]:
        """
        Moller-Trumbore ray/triangle test.

        Args:
            origin: Ray start point.
            direction: Ray direction (need not be unit length).

        Returns:
            Intersection, or None when the ray is parallel to the plane or
            passes outside the triangle. The parameter t may be negative
            (hit behind the origin); callers filter on it.
        """
        v0, v1, v2 = self.vertices
        edge1 = v1 - v0
        edge2 = v2 - v0
        h = direction.cross(edge2)
        a = edge1.dot(h)
        if abs(a) < PARALLEL_EPSILON:
            return None

        f = 1.0 / a
        s = origin - v0
        u = f * s.dot(h)
        if u < 0.0 or u > 1.0:
            return None

        q = s.cross(edge1)
        v = f * direction.dot(q)
        if v < 0.0 or u + v > 1.0:
            return None

        t = f * edge2.dot(q)

        cos_angle = self.normal().dot(direction) / direction.magnitude
        angle = math.degrees(math.acos(max(-1.0, min(1.0, cos_angle))))
        if angle < 0.0:
            angle = -angle
        elif angle > 90.0:
            angle = 180.0 - angle

        return Intersection(
            t=t,
            angle_deg=90.0 - angle,
            point=origin + direction * t,
        )


def next_intersection(
    mesh: Sequence[ArmorFace],
    origin: Vector3D,
    direction: Vector3D
) -> Optional[tuple[ArmorFace, Intersection]]:
    """
    Nearest face hit strictly ahead of the ray origin.

    Ties on t keep the face that comes first in the mesh.

    Args:
        mesh: Armor faces to test.
        origin: Ray start point.
        direction: Ray direction.

    Returns:
        (face, intersection) for the smallest t above the self-intersection
        epsilon, or None if the ray leaves the mesh.
    """
    best: Optional[tuple[ArmorFace, Intersection]] = None
    for face in mesh:
        hit = face.intersect(origin, direction)
        if hit is None or hit.t <= SELF_INTERSECTION_EPSILON:
            continue
        if best is None or hit.t < best[1].t:
            best = (face, hit)
    return best


def bounding_box(mesh: Iterable[ArmorFace]) -> tuple[Vector3D, Vector3D]:
    """
    Axis-aligned bounds of a mesh.

    Raises:
        ValueError: If the mesh has no faces.
    """
    points = [vertex for face in mesh for vertex in face.vertices]
    if not points:
        raise ValueError("Cannot compute bounds of an empty mesh")
    mins = Vector3D(
        min(p.x for p in points), min(p.y for p in points), min(p.z for p in points)
    )
    maxs = Vector3D(
        max(p.x for p in points), max(p.y for p in points), max(p.z for p in points)
    )
    return mins, maxs


def mesh_size(mesh: Iterable[ArmorFace]) -> Vector3D:
    """Extent of a mesh along each axis."""
    mins, maxs = bounding_box(mesh)
    return maxs - mins
