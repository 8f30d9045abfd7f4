"""
Ammunition, targets and damage resolution for the naval gunnery simulator.

This module holds the shell variants (HE and AP), the gun mounts that fire
them, the target description they are fired at, and the resolvers that turn
an impact into damage and an ImpactType.

HE shells resolve on the first plate only: they either fail to pierce it or
deal a third of their alpha damage.

AP shells walk the armor mesh plate by plate, deciding at each plate whether
they ricochet, penetrate, run out of penetration, or detonate after their
fuse delay. Crossing a citadel plate an odd number of times puts the shell
inside the citadel, where detonation deals full alpha damage.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .armor import ArmorFace, ArmorType
from .ballistics import DispersionProfile, GunSpec
from .impact import ImpactPath
from .physics import Vector3D, deg2rad


logger = logging.getLogger(__name__)


# =============================================================================
# DAMAGE CONSTANTS
# =============================================================================

# Fraction of alpha damage for a plain (non-citadel) penetration
PENETRATION_DAMAGE_FRACTION = 0.3333
HE_DAMAGE_FRACTION = 1.0 / 3.0
OVER_PENETRATION_DAMAGE_FRACTION = 0.1

# Plates thinner than caliber / this ratio never cause a ricochet
RICOCHET_OVERMATCH_RATIO = 14.3
# Below this obliquity a shell always ricochets
RICOCHET_ALWAYS_ANGLE_DEG = 30.0
# At or above this obliquity a shell never ricochets
RICOCHET_NEVER_ANGLE_DEG = 45.0

# Obliquity allowance subtracted before thickness normalization
NORMALIZATION_ANGLE_DEG = 6.0


class ImpactType(Enum):
    """Terminal outcome of a single shell."""
    MISS = "miss"
    NON_PENETRATION = "non_penetration"
    CITADEL = "citadel"
    PENETRATION = "penetration"
    TORPEDO_PROTECTION = "torpedo_protection"
    RICOCHET = "ricochet"
    OVER_PENETRATION = "over_penetration"


# =============================================================================
# SHELL VARIANTS
# =============================================================================

@dataclass(frozen=True)
class HeAmmo:
    """
    High-explosive shell.

    Attributes:
        damage: Alpha damage.
        piercing_mm: Thickest plate the shell can pierce.
    """
    damage: float
    piercing_mm: float


@dataclass(frozen=True)
class ApAmmo:
    """
    Armor-piercing shell.

    Attributes:
        diameter_m: Shell caliber (drives the overmatch rule).
        damage: Alpha damage.
        detonator_s: Fuse delay once armed.
        detonator_threshold_mm: Effective plate thickness that arms the fuse.
    """
    diameter_m: float
    damage: float
    detonator_s: float
    detonator_threshold_mm: float

    @property
    def caliber_mm(self) -> float:
        return self.diameter_m * 1000.0


Bullet = Union[HeAmmo, ApAmmo]


@dataclass(frozen=True)
class Ammo:
    """A shell variant together with its ballistics."""
    bullet: Bullet
    ballistics: GunSpec

    @property
    def kind(self) -> str:
        return "HE" if isinstance(self.bullet, HeAmmo) else "AP"


@dataclass(frozen=True)
class GunMount:
    """
    A gun mount: its dispersion and the shells it can load.

    Attributes:
        dispersion: Aim scatter of the mount.
        ammo: Shell choices, in loading order.
    """
    dispersion: DispersionProfile
    ammo: tuple[Ammo, ...] = ()


@dataclass
class TargetConfiguration:
    """
    One hull configuration of a ship, as fired at by the simulator.

    Attributes:
        artillery: Main battery mounts.
        armor: Armor mesh (order only matters for tie-breaking).
        speed_ms: Maximum speed.
        length_m: Hull length.
        name: Hull name.
    """
    artillery: list[GunMount] = field(default_factory=list)
    armor: list[ArmorFace] = field(default_factory=list)
    speed_ms: float = 0.0
    length_m: float = 0.0
    name: str = ""


# =============================================================================
# RESOLVERS
# =============================================================================

def ricochet_probability(
    caliber_mm: float,
    thickness_mm: float,
    angle_deg: float
) -> float:
    """
    Probability that a shell ricochets off a plate.

    Args:
        caliber_mm: Shell caliber in mm.
        thickness_mm: Plate thickness in mm.
        angle_deg: Obliquity (0 grazing, 90 perpendicular).

    Returns:
        0.0 for overmatched plates or steep hits, 1.0 for shallow hits,
        linear in between.
    """
    if thickness_mm < caliber_mm / RICOCHET_OVERMATCH_RATIO:
        return 0.0
    if angle_deg < RICOCHET_ALWAYS_ANGLE_DEG:
        return 1.0
    if angle_deg < RICOCHET_NEVER_ANGLE_DEG:
        return (angle_deg - RICOCHET_ALWAYS_ANGLE_DEG) / (
            RICOCHET_NEVER_ANGLE_DEG - RICOCHET_ALWAYS_ANGLE_DEG
        )
    return 0.0


def effective_thickness(thickness_mm: float, angle_deg: float) -> float:
    """
    Plate thickness along the shell path after normalization.

    The obliquity is reduced by a 6 degree allowance (floored at 0) and the
    plate thickness divided by cos(90 - angle).
    """
    angle = max(0.0, angle_deg - NORMALIZATION_ANGLE_DEG)
    return thickness_mm / math.cos(deg2rad(90.0 - angle))


def resolve_he(
    shell: HeAmmo,
    target: TargetConfiguration,
    direction: Vector3D,
    offset: Vector3D
) -> tuple[float, ImpactType]:
    """Resolve an HE hit on the first plate along the path."""
    entry = ImpactPath.enter(target, direction, offset)
    if entry is None:
        logger.debug("Trajectory was a miss")
        return 0.0, ImpactType.MISS
    _, face, intersection = entry
    logger.debug(
        "HE impact at %r on %s plate, %.1f mm",
        intersection.point, face.armor_type.value, face.thickness_mm,
    )

    if face.thickness_mm > shell.piercing_mm:
        return 0.0, ImpactType.NON_PENETRATION
    if face.armor_type == ArmorType.CITADEL:
        return shell.damage * HE_DAMAGE_FRACTION, ImpactType.CITADEL
    return shell.damage * HE_DAMAGE_FRACTION, ImpactType.PENETRATION


def _detonate(
    shell: ApAmmo,
    face: ArmorFace,
    citadel_count: int
) -> tuple[float, ImpactType]:
    if citadel_count % 2 == 1:
        return shell.damage, ImpactType.CITADEL
    if face.armor_type == ArmorType.TORPEDO_PROTECTION_BELT:
        return 0.0, ImpactType.TORPEDO_PROTECTION
    return PENETRATION_DAMAGE_FRACTION * shell.damage, ImpactType.PENETRATION


def resolve_ap(
    shell: ApAmmo,
    target: TargetConfiguration,
    penetration_mm: float,
    speed_ms: float,
    direction: Vector3D,
    offset: Vector3D,
    rng: Optional[random.Random] = None
) -> tuple[float, ImpactType]:
    """
    Walk an AP shell through the armor mesh to a terminal outcome.

    Per plate:
    1. Count citadel crossings.
    2. Run down an armed fuse by the distance since the previous plate;
       detonate when it expires.
    3. Decide ricochet from obliquity and overmatch.
    4. On ricochet, follow the reflected path (leaving the mesh = Ricochet).
    5. Otherwise spend normalized thickness from the penetration budget.
       Running out on the first plate is a NonPenetration; later it is a
       detonation. Thick plates arm the fuse. Leaving the mesh after a
       penetration is an OverPenetration.

    The walk is capped at 2 * len(mesh) + 2 plates; past the cap the shell
    detonates on the current plate.

    Args:
        shell: AP shell parameters.
        target: Target configuration.
        penetration_mm: Penetration capacity at impact.
        speed_ms: Impact speed (drives the fuse distance).
        direction: Shell direction of travel.
        offset: Aim point in target space.
        rng: Random source for the ricochet roll.

    Returns:
        (damage, ImpactType)
    """
    rng = rng or random.Random()
    entry = ImpactPath.enter(target, direction, offset)
    if entry is None:
        logger.debug("Trajectory was a miss")
        return 0.0, ImpactType.MISS
    path, face, intersection = entry
    logger.debug("AP impact on %s plate", face.armor_type.value)

    budget = penetration_mm
    citadel_count = 0
    last_point: Optional[Vector3D] = None
    fuse_m: Optional[float] = None
    max_steps = 2 * len(target.armor) + 2

    for _ in range(max_steps):
        if face.armor_type == ArmorType.CITADEL:
            citadel_count += 1

        if last_point is not None and fuse_m is not None:
            fuse_m -= intersection.point.distance_to(last_point)
            if fuse_m < 0.0:
                logger.debug("Detonating on fuse")
                return _detonate(shell, face, citadel_count)

        probability = ricochet_probability(
            shell.caliber_mm, face.thickness_mm, intersection.angle_deg
        )
        ricochet = probability >= 1.0 or (
            probability > 0.0 and rng.random() < probability
        )

        if ricochet:
            hit = path.ricochet()
            if hit is None:
                return 0.0, ImpactType.RICOCHET
        else:
            thickness = effective_thickness(face.thickness_mm, intersection.angle_deg)
            budget -= thickness
            if budget < 0.0:
                if last_point is None:
                    return 0.0, ImpactType.NON_PENETRATION
                return _detonate(shell, face, citadel_count)
            if thickness > shell.detonator_threshold_mm:
                fuse_m = speed_ms * shell.detonator_s
            hit = path.penetrate()
            if hit is None:
                return OVER_PENETRATION_DAMAGE_FRACTION * shell.damage, ImpactType.OVER_PENETRATION

        last_point = intersection.point
        face, intersection = hit

    logger.warning(
        "AP traversal of %s exceeded %d plates; detonating in place",
        target.name or "target", max_steps,
    )
    return _detonate(shell, face, citadel_count)


def compute_damage(
    bullet: Bullet,
    target: TargetConfiguration,
    penetration_mm: float,
    speed_ms: float,
    direction: Vector3D,
    offset: Vector3D,
    rng: Optional[random.Random] = None
) -> tuple[float, ImpactType]:
    """
    Resolve a shell impact for either shell variant.

    Raises:
        TypeError: If ``bullet`` is not an HeAmmo or ApAmmo.
    """
    if isinstance(bullet, HeAmmo):
        return resolve_he(bullet, target, direction, offset)
    if isinstance(bullet, ApAmmo):
        return resolve_ap(bullet, target, penetration_mm, speed_ms, direction, offset, rng)
    raise TypeError(f"Unsupported shell type: {type(bullet).__name__}")
