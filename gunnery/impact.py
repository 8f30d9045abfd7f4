"""
Shell path traversal through a target's armor mesh.

ImpactPath walks a shell from plate to plate. It owns only its own position
and direction; the face list is borrowed read-only from the target.
"""

from __future__ import annotations

from typing import Optional, Sequence, TYPE_CHECKING

from .armor import ArmorFace, Intersection, next_intersection
from .physics import Vector3D

if TYPE_CHECKING:
    from .ammo import TargetConfiguration


# Distance behind the aim point that the entry ray is cast from
ENTRY_STANDOFF_M = 1000.0


class ImpactPath:
    """
    Stateful walk of one shell through an armor mesh.

    After construction the path sits on the first plate hit. Each advance
    (ricochet or penetrate) moves to the next plate along the chosen
    direction, or returns None when the shell leaves the mesh.

    Attributes:
        mesh: Borrowed armor faces of the target.
        position: Current hit point.
        direction: Current direction of travel.
        reflected_direction: Direction a ricochet off the current plate
                             would take.
    """

    def __init__(
        self,
        mesh: Sequence[ArmorFace],
        position: Vector3D,
        direction: Vector3D,
        reflected_direction: Vector3D
    ):
        self.mesh = mesh
        self.position = position
        self.direction = direction
        self.reflected_direction = reflected_direction

    @classmethod
    def enter(
        cls,
        target: TargetConfiguration,
        direction: Vector3D,
        offset: Vector3D
    ) -> Optional[tuple[ImpactPath, ArmorFace, Intersection]]:
        """
        Cast a shell at the target and find the first plate it strikes.

        The ray starts ENTRY_STANDOFF_M behind the aim offset, against the
        direction of travel.

        Args:
            target: Target whose armor mesh is walked.
            direction: Shell direction of travel.
            offset: Aim point in target space.

        Returns:
            (path, face, intersection) for the first hit, or None on a miss.
        """
        start = offset - direction * ENTRY_STANDOFF_M
        first = next_intersection(target.armor, start, direction)
        if first is None:
            return None
        face, intersection = first
        path = cls(
            mesh=target.armor,
            position=intersection.point,
            direction=direction,
            reflected_direction=face.reflect(direction),
        )
        return path, face, intersection

    def ricochet(self) -> Optional[tuple[ArmorFace, Intersection]]:
        """
        Deflect off the current plate and advance to the next one.

        Returns:
            (face, intersection) of the next plate, or None if the deflected
            shell leaves the mesh.
        """
        self.direction = self.reflected_direction
        return self._advance()

    def penetrate(self) -> Optional[tuple[ArmorFace, Intersection]]:
        """
        Pass straight through the current plate and advance to the next one.

        Returns:
            (face, intersection) of the next plate, or None if the shell
            passes out of the mesh.
        """
        return self._advance()

    def _advance(self) -> Optional[tuple[ArmorFace, Intersection]]:
        hit = next_intersection(self.mesh, self.position, self.direction)
        if hit is None:
            return None
        face, intersection = hit
        self.position = intersection.point
        self.reflected_direction = face.reflect(self.direction)
        return face, intersection
