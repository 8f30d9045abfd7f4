"""
Vector math for the naval gunnery simulator.

Provides the immutable 3D vector used for armor mesh vertices, ray origins,
shell directions and dispersion offsets, plus the angle helpers shared by the
ballistics and penetration models.

World axes follow the armor model data:
- X: horizontal, azimuth 0
- Y: up
- Z: horizontal, azimuth 90
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator, Sequence


# =============================================================================
# PHYSICAL CONSTANTS
# =============================================================================

# Standard gravity (m/s^2)
G_STANDARD = 9.81

# Tolerance used by Vector3D equality
VECTOR_EPSILON = 1e-10


def deg2rad(angle_deg: float) -> float:
    """Convert degrees to radians."""
    return math.radians(angle_deg)


def rad2deg(angle_rad: float) -> float:
    """Convert radians to degrees."""
    return math.degrees(angle_rad)



# =============================================================================
# VECTOR3D CLASS
# =============================================================================

@dataclass(frozen=True, eq=False)
class Vector3D:
    """
    Immutable 3D vector for mesh vertices, hit points and shell directions.

    Equality is tolerant (VECTOR_EPSILON per component), so vectors are not
    hashable; key collections by face or index instead.
    """
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def zero(cls) -> Vector3D:
        return cls(0.0, 0.0, 0.0)

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> Vector3D:
        """Build from the first three items of a list, tuple or numpy row."""
        x, y, z = values[:3]
        return cls(float(x), float(y), float(z))

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y
        yield self.z

    def __add__(self, other: Vector3D) -> Vector3D:
        return Vector3D(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vector3D) -> Vector3D:
        return Vector3D(self.x - other.x, self.y - other.y, self.z - other.z)

    def __neg__(self) -> Vector3D:
        return Vector3D(-self.x, -self.y, -self.z)

    def __mul__(self, k: float) -> Vector3D:
        return Vector3D(k * self.x, k * self.y, k * self.z)

    __rmul__ = __mul__

    def __truediv__(self, k: float) -> Vector3D:
        if k == 0:
            raise ValueError("Cannot divide vector by zero")
        return Vector3D(self.x / k, self.y / k, self.z / k)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Vector3D):
            return NotImplemented
        return all(abs(a - b) < VECTOR_EPSILON for a, b in zip(self, other))

    def is_close(self, other: Vector3D, tol: float = 1e-9) -> bool:
        """True if the two points are within ``tol`` of each other."""
        return self.distance_to(other) <= tol

    def dot(self, other: Vector3D) -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: Vector3D) -> Vector3D:
        return Vector3D(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    @property
    def magnitude(self) -> float:
        return math.sqrt(self.dot(self))

    def normalized(self) -> Vector3D:
        """Unit vector along this one; the zero vector maps to itself."""
        length = self.magnitude
        return self / length if length else Vector3D.zero()

    def distance_to(self, other: Vector3D) -> float:
        return (other - self).magnitude

    def __repr__(self) -> str:
        return "Vector3D({:.6g}, {:.6g}, {:.6g})".format(*self)
