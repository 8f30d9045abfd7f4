"""
Exterior ballistics for the naval gunnery simulator.

Implements:
- GunSpec: immutable muzzle characteristics of a shell
- Trajectory integration under gravity and altitude-dependent drag
- Inverse range solving (launch angle for a given horizontal range)
- Dispersion sampling around the aim point

Integration model:
- Planar motion (horizontal x, altitude y)
- Forward Euler with a fixed 0.05 s step
- Air density from the barometric formula evaluated at the current altitude
- Drag = linear term + quadratic term, scaled by a diameter/drag shape factor
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import Optional

from .physics import G_STANDARD, Vector3D, deg2rad, rad2deg


logger = logging.getLogger(__name__)


# =============================================================================
# ATMOSPHERE CONSTANTS
# =============================================================================

TEMP_SEA_LEVEL_K = 288.0
TEMP_LAPSE_RATE_K_M = 0.0065
PRESSURE_SEA_LEVEL_PA = 101325.0
AIR_MOLAR_MASS_KG_MOL = 0.0289644
GAS_CONSTANT = 8.31447

# =============================================================================
# INTEGRATOR / SOLVER CONSTANTS
# =============================================================================

TIME_STEP_S = 0.05

RANGE_SOLVER_INITIAL_ANGLE_DEG = 22.5
RANGE_SOLVER_MAX_ITERATIONS = 12
RANGE_SOLVER_TOLERANCE_M = 1.0

# Empirical penetration formula
PENETRATION_COEFFICIENT = 0.5561613
PENETRATION_KRUPP_REFERENCE = 2400.0
PENETRATION_SPEED_EXPONENT = 1.1
PENETRATION_MASS_EXPONENT = 0.55
PENETRATION_CALIBER_EXPONENT = 0.65

# Dispersion draws are rejected outside this half-width
DISPERSION_BOUND = 0.5


def air_density(altitude_m: float) -> float:
    """
    Air density (kg/m^3) at an altitude from the barometric formula.

    Args:
        altitude_m: Height above sea level in meters.

    Returns:
        Density from the ideal-gas relation at the lapsed temperature
        and barometric pressure; 0.0 above the altitude where the lapsed
        temperature reaches absolute zero (about 44.3 km).
    """
    temperature = TEMP_SEA_LEVEL_K - TEMP_LAPSE_RATE_K_M * altitude_m
    if temperature <= 0.0:
        return 0.0
    exponent = G_STANDARD * AIR_MOLAR_MASS_KG_MOL / GAS_CONSTANT / TEMP_LAPSE_RATE_K_M
    pressure = PRESSURE_SEA_LEVEL_PA * (temperature / TEMP_SEA_LEVEL_K) ** exponent
    return pressure * AIR_MOLAR_MASS_KG_MOL / GAS_CONSTANT / temperature


# =============================================================================
# FLIGHT RESULTS
# =============================================================================

@dataclass(frozen=True)
class FlightOutcome:
    """
    Result of one trajectory evaluation.

    Attributes:
        distance_m: Horizontal distance at landing.
        impact_speed_ms: Speed at landing.
        time_aloft_s: Time of flight.
        impact_angle_deg: Angle of the velocity vector from horizontal at
                          landing (negative while descending).
        penetration_mm: Armor penetration capacity at the impact speed.
    """
    distance_m: float
    impact_speed_ms: float
    time_aloft_s: float
    impact_angle_deg: float
    penetration_mm: float


@dataclass(frozen=True)
class RangeSolution:
    """
    Result of solving for the launch angle that reaches a range.

    Attributes:
        flight: Outcome of the last evaluated trajectory.
        launch_angle_deg: Launch angle that produced ``flight``.
        iterations: Number of trajectory evaluations used.
        converged: True if the distance error fell under the tolerance.
    """
    flight: FlightOutcome
    launch_angle_deg: float
    iterations: int
    converged: bool


# =============================================================================
# GUN SPEC
# =============================================================================

@dataclass(frozen=True)
class GunSpec:
    """
    Muzzle characteristics of one shell type.

    Attributes:
        mass_kg: Projectile mass.
        diameter_m: Projectile caliber.
        muzzle_speed_ms: Muzzle velocity.
        drag: Air drag coefficient.
        krupp: Armor-penetration quality constant.
    """
    mass_kg: float
    diameter_m: float
    muzzle_speed_ms: float
    drag: float
    krupp: float

    @property
    def caliber_mm(self) -> float:
        return self.diameter_m * 1000.0

    @property
    def drag_factor(self) -> float:
        """Shape factor k = 0.5 * cd * A / m."""
        radius = self.diameter_m / 2.0
        return 0.5 * self.drag * radius * radius * math.pi / self.mass_kg

    def penetration_at(self, impact_speed_ms: float) -> float:
        """Penetration capacity (mm) of this shell striking at a speed."""
        c_pen = PENETRATION_COEFFICIENT * self.krupp / PENETRATION_KRUPP_REFERENCE
        return (
            c_pen
            * impact_speed_ms ** PENETRATION_SPEED_EXPONENT
            * self.mass_kg ** PENETRATION_MASS_EXPONENT
            / self.caliber_mm ** PENETRATION_CALIBER_EXPONENT
        )

    def flight_for_angle(self, angle_deg: float) -> FlightOutcome:
        """
        Integrate a trajectory fired at a launch angle.

        Position is advanced with the velocity at the start of each step,
        then drag and gravity update the velocity. The loop ends on the first
        step that takes the altitude below zero; the landing state is then
        interpolated linearly to the ground crossing within that step, so
        distance varies continuously with the launch angle.

        Args:
            angle_deg: Launch elevation above horizontal in degrees.

        Returns:
            FlightOutcome at the ground crossing.
        """
        cw_quadratic = 1.0
        cw_linear = 100.0 + 1000.0 / 3.0 * self.diameter_m
        k = self.drag_factor

        vx = self.muzzle_speed_ms * math.cos(deg2rad(angle_deg))
        vy = self.muzzle_speed_ms * math.sin(deg2rad(angle_deg))
        x = 0.0
        y = 0.0
        t = 0.0
        dt = TIME_STEP_S
        while True:
            x_prev, y_prev, vx_prev, vy_prev = x, y, vx, vy
            x += dt * vx
            y += dt * vy

            rho = air_density(y)
            vx -= dt * k * rho * (cw_quadratic * vx * vx + cw_linear * vx)
            vy -= dt * G_STANDARD + dt * k * rho * (cw_quadratic * vy * vy + cw_linear * vy)

            t += dt
            if y < 0.0:
                break

        # Fraction of the last step flown before touching the ground
        frac = y_prev / (y_prev - y)
        x = x_prev + frac * (x - x_prev)
        t = t - dt + frac * dt
        vx = vx_prev + frac * (vx - vx_prev)
        vy = vy_prev + frac * (vy - vy_prev)

        speed = math.hypot(vx, vy)
        return FlightOutcome(
            distance_m=x,
            impact_speed_ms=speed,
            time_aloft_s=t,
            impact_angle_deg=rad2deg(math.atan2(vy, vx)),
            penetration_mm=self.penetration_at(speed),
        )

    def flight_for_range(self, target_range_m: float) -> RangeSolution:
        """
        Find the launch angle whose trajectory lands at a range.

        Proportional rescaling: starting at 22.5 degrees, each iteration
        scales the guess by target/achieved distance. This is a best-effort
        solver; beyond maximum range, or near vertical fire where distance
        is not monotonic in angle, it may not converge. That case is
        reported through ``RangeSolution.converged`` rather than raised.

        Args:
            target_range_m: Desired horizontal range in meters.

        Returns:
            RangeSolution for the final evaluated angle.
        """
        guess = RANGE_SOLVER_INITIAL_ANGLE_DEG
        for iteration in range(1, RANGE_SOLVER_MAX_ITERATIONS + 1):
            flight = self.flight_for_angle(guess)
            if abs(flight.distance_m - target_range_m) < RANGE_SOLVER_TOLERANCE_M:
                return RangeSolution(flight, guess, iteration, converged=True)
            if flight.distance_m <= 0.0:
                # Rescaled past vertical; no further guess is meaningful
                logger.debug(
                    "Range solver lost the trajectory for %.1f m at %.3f deg",
                    target_range_m, guess,
                )
                return RangeSolution(flight, guess, iteration, converged=False)
            guess = guess * target_range_m / flight.distance_m

        flight = self.flight_for_angle(guess)
        converged = abs(flight.distance_m - target_range_m) < RANGE_SOLVER_TOLERANCE_M
        if not converged:
            logger.debug(
                "Range solver did not converge for %.1f m (last %.1f m at %.3f deg)",
                target_range_m, flight.distance_m, guess,
            )
        return RangeSolution(flight, guess, RANGE_SOLVER_MAX_ITERATIONS + 1, converged)

    def max_range(self, step_deg: float = 1.0, max_angle_deg: float = 60.0) -> float:
        """
        Longest distance reachable by scanning launch angles.

        Args:
            step_deg: Angle increment for the scan.
            max_angle_deg: Highest launch angle to evaluate.

        Returns:
            Best horizontal distance found in meters.
        """
        best = 0.0
        angle = step_deg
        while angle <= max_angle_deg:
            best = max(best, self.flight_for_angle(angle).distance_m)
            angle += step_deg
        return best


# =============================================================================
# DISPERSION
# =============================================================================

_default_rng = random.Random()


def bounded_gauss(sigma: float, rng: Optional[random.Random] = None) -> float:
    """
    Draw from N(0, sigma), redrawing until strictly inside (-0.5, 0.5).

    Args:
        sigma: Standard deviation of the underlying normal.
        rng: Random source (module generator if None).

    Returns:
        A bounded normal sample.
    """
    rng = rng or _default_rng
    while True:
        value = rng.gauss(0.0, sigma)
        if -DISPERSION_BOUND < value < DISPERSION_BOUND:
            return value


@dataclass(frozen=True)
class DispersionProfile:
    """
    Aim scatter of a gun mount.

    Spread grows linearly with range and is bounded by rejection sampling,
    so no offset exceeds half the scaled spread on either axis.

    Attributes:
        horizontal_m: Horizontal spread scale.
        vertical_m: Vertical spread scale.
        max_range_m: Reference range at which the spread scales apply.
        sigma: Shape parameter of the bounded normal.
    """
    horizontal_m: float
    vertical_m: float
    max_range_m: float
    sigma: float

    def spread(
        self,
        range_m: float,
        rng: Optional[random.Random] = None
    ) -> tuple[float, float]:
        """Unrotated (horizontal, vertical) offset for a shot at a range."""
        distance_factor = range_m / self.max_range_m
        dx = self.horizontal_m * bounded_gauss(self.sigma, rng) * distance_factor
        dy = self.vertical_m * bounded_gauss(self.sigma, rng) * distance_factor
        return dx, dy

    def offset(
        self,
        azimuth_deg: float,
        range_m: float,
        rng: Optional[random.Random] = None
    ) -> Vector3D:
        """
        Random aim offset in world axes.

        The spread pair is rotated by the azimuth in the horizontal (x, z)
        plane.

        Args:
            azimuth_deg: Firing azimuth in degrees.
            range_m: Firing range in meters.
            rng: Random source (module generator if None).

        Returns:
            World-space offset with zero vertical (y) component.
        """
        dx, dy = self.spread(range_m, rng)
        a = deg2rad(azimuth_deg)
        return Vector3D(
            dx * math.cos(a) - dy * math.sin(a),
            0.0,
            dx * math.sin(a) + dy * math.cos(a),
        )
