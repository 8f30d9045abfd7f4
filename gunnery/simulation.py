"""
Shot and volley simulation for the naval gunnery simulator.

Composes the pieces of a single shot:
1. Dispersion offsets the aim point
2. The range solver gives impact angle, speed and penetration
3. The shell's resolver walks the target's armor to an outcome

Volleys repeat independent shots and aggregate mean damage and an outcome
histogram. Every function takes an explicit random source so results are
reproducible; parallel volleys give each worker its own generator.
"""

from __future__ import annotations

import logging
import math
import random
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from .ammo import Ammo, ImpactType, TargetConfiguration, compute_damage
from .ballistics import DispersionProfile, FlightOutcome, RangeSolution
from .physics import Vector3D, deg2rad


logger = logging.getLogger(__name__)


# Azimuth sweep used for per-ship reports: 36 volleys, 10 degrees apart
DEFAULT_SWEEP_STEPS = 36


@dataclass
class VolleyResult:
    """
    Aggregate of a batch of independent shots.

    Attributes:
        mean_damage: Average damage per shot.
        outcomes: Count of shots per ImpactType.
        shots: Number of shots fired.
        converged: False if the range solver only approximated the
                   trajectory every shot shared.
    """
    mean_damage: float
    outcomes: Counter = field(default_factory=Counter)
    shots: int = 0
    converged: bool = True

    def count(self, impact: ImpactType) -> int:
        return self.outcomes.get(impact, 0)

    def fraction(self, impact: ImpactType) -> float:
        """Share of shots that ended with an outcome."""
        if self.shots == 0:
            return 0.0
        return self.count(impact) / self.shots

    def __str__(self) -> str:
        parts = ", ".join(
            f"{impact.value}={count}"
            for impact, count in sorted(self.outcomes.items(), key=lambda kv: kv[0].value)
        )
        text = f"{self.mean_damage:.1f} mean damage over {self.shots} shots ({parts})"
        if not self.converged:
            text += " [approximate trajectory]"
        return text


def impact_direction(azimuth_deg: float, impact_angle_deg: float) -> Vector3D:
    """
    World-space direction of a falling shell.

    Args:
        azimuth_deg: Firing azimuth in the horizontal (x, z) plane.
        impact_angle_deg: Flight angle from horizontal at impact
                          (negative while descending).
    """
    az = deg2rad(azimuth_deg)
    ia = deg2rad(impact_angle_deg)
    return Vector3D(
        math.cos(az) * math.cos(ia),
        math.sin(ia),
        math.sin(az) * math.cos(ia),
    )


def _solve_range(ammo: Ammo, range_m: float) -> RangeSolution:
    solution = ammo.ballistics.flight_for_range(range_m)
    if not solution.converged:
        logger.warning(
            "No trajectory within tolerance for %.0f m; using %.0f m at %.2f deg",
            range_m, solution.flight.distance_m, solution.launch_angle_deg,
        )
    return solution


def _resolve_flight(
    ammo: Ammo,
    flight: FlightOutcome,
    target: TargetConfiguration,
    azimuth_deg: float,
    aim_offset: Vector3D,
    rng: Optional[random.Random]
) -> tuple[float, ImpactType]:
    direction = impact_direction(azimuth_deg, flight.impact_angle_deg)
    return compute_damage(
        ammo.bullet,
        target,
        flight.penetration_mm,
        flight.impact_speed_ms,
        direction,
        aim_offset,
        rng,
    )


def evaluate_shot(
    ammo: Ammo,
    target: TargetConfiguration,
    range_m: float,
    azimuth_deg: float,
    aim_offset: Vector3D,
    rng: Optional[random.Random] = None
) -> tuple[float, ImpactType]:
    """
    Fire one undispersed shell at a target.

    Args:
        ammo: Shell and its ballistics.
        target: Target configuration.
        range_m: Firing range in meters.
        azimuth_deg: Firing azimuth in degrees.
        aim_offset: Aim point in target space.
        rng: Random source for ricochet rolls.

    Returns:
        (damage, ImpactType)
    """
    solution = _solve_range(ammo, range_m)
    logger.debug("At range %.0f m, calculated path %r", range_m, solution.flight)
    return _resolve_flight(ammo, solution.flight, target, azimuth_deg, aim_offset, rng)


def take_shot(
    dispersion: DispersionProfile,
    ammo: Ammo,
    target: TargetConfiguration,
    range_m: float,
    azimuth_deg: float,
    aim_offset: Vector3D,
    rng: Optional[random.Random] = None
) -> tuple[float, ImpactType]:
    """Fire one shell with dispersion applied to the aim point."""
    offset = aim_offset + dispersion.offset(azimuth_deg, range_m, rng)
    return evaluate_shot(ammo, target, range_m, azimuth_deg, offset, rng)


def _fire_volley(
    shot_count: int,
    flight: FlightOutcome,
    dispersion: DispersionProfile,
    ammo: Ammo,
    target: TargetConfiguration,
    range_m: float,
    azimuth_deg: float,
    aim_offset: Vector3D,
    rng: random.Random
) -> tuple[float, Counter]:
    total_damage = 0.0
    outcomes: Counter = Counter()
    for _ in range(shot_count):
        offset = aim_offset + dispersion.offset(azimuth_deg, range_m, rng)
        damage, impact = _resolve_flight(ammo, flight, target, azimuth_deg, offset, rng)
        total_damage += damage
        outcomes[impact] += 1
    return total_damage, outcomes


def evaluate_volley(
    shot_count: int,
    dispersion: DispersionProfile,
    ammo: Ammo,
    target: TargetConfiguration,
    range_m: float,
    azimuth_deg: float,
    aim_offset: Vector3D,
    rng: Optional[random.Random] = None
) -> VolleyResult:
    """
    Fire a batch of independent dispersed shots.

    The trajectory for the range is solved once and shared by every shot.

    Args:
        shot_count: Number of shots.
        dispersion: Aim scatter of the firing mount.
        ammo: Shell and its ballistics.
        target: Target configuration.
        range_m: Firing range in meters.
        azimuth_deg: Firing azimuth in degrees.
        aim_offset: Nominal aim point in target space.
        rng: Random source for dispersion and ricochet rolls.

    Returns:
        VolleyResult with mean damage, outcome histogram and whether the
        range solver converged.

    Raises:
        ValueError: If shot_count is not positive.
    """
    if shot_count <= 0:
        raise ValueError("shot_count must be positive")
    rng = rng or random.Random()
    solution = _solve_range(ammo, range_m)
    total_damage, outcomes = _fire_volley(
        shot_count, solution.flight, dispersion, ammo, target, range_m, azimuth_deg, aim_offset, rng
    )
    return VolleyResult(total_damage / shot_count, outcomes, shot_count, solution.converged)


def evaluate_volley_parallel(
    shot_count: int,
    dispersion: DispersionProfile,
    ammo: Ammo,
    target: TargetConfiguration,
    range_m: float,
    azimuth_deg: float,
    aim_offset: Vector3D,
    rng: Optional[random.Random] = None,
    workers: int = 4
) -> VolleyResult:
    """
    evaluate_volley split across a thread pool.

    Each chunk gets its own random.Random seeded from ``rng``, so a seeded
    caller gets the same result for the same worker count.
    """
    if shot_count <= 0:
        raise ValueError("shot_count must be positive")
    rng = rng or random.Random()
    workers = max(1, min(workers, shot_count))
    solution = _solve_range(ammo, range_m)

    base, extra = divmod(shot_count, workers)
    chunks = [base + (1 if i < extra else 0) for i in range(workers)]
    seeds = [rng.getrandbits(64) for _ in chunks]

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [
            pool.submit(
                _fire_volley, count, solution.flight, dispersion, ammo, target,
                range_m, azimuth_deg, aim_offset, random.Random(seed),
            )
            for count, seed in zip(chunks, seeds)
        ]
        results = [future.result() for future in futures]

    total_damage = sum(damage for damage, _ in results)
    outcomes: Counter = Counter()
    for _, chunk_outcomes in results:
        outcomes.update(chunk_outcomes)
    return VolleyResult(total_damage / shot_count, outcomes, shot_count, solution.converged)


def azimuth_sweep(
    shot_count: int,
    dispersion: DispersionProfile,
    ammo: Ammo,
    target: TargetConfiguration,
    range_m: float,
    aim_offset: Optional[Vector3D] = None,
    steps: int = DEFAULT_SWEEP_STEPS,
    rng: Optional[random.Random] = None
) -> list[tuple[float, VolleyResult]]:
    """
    Volleys at evenly spaced azimuths around the full circle.

    Returns:
        List of (azimuth_deg, VolleyResult), in increasing azimuth.
    """
    rng = rng or random.Random()
    aim_offset = aim_offset or Vector3D.zero()
    results = []
    for i in range(steps):
        azimuth = i * 360.0 / steps
        result = evaluate_volley(
            shot_count, dispersion, ammo, target, range_m, azimuth, aim_offset, rng
        )
        logger.info(
            "%.0f degrees: %.1f w/ %d misses/%d penetrations",
            azimuth, result.mean_damage,
            result.count(ImpactType.MISS), result.count(ImpactType.PENETRATION),
        )
        results.append((azimuth, result))
    return results
