"""Naval gunnery simulator package."""

from .ammo import (
    Ammo,
    ApAmmo,
    GunMount,
    HeAmmo,
    ImpactType,
    TargetConfiguration,
    compute_damage,
)

from .armor import (
    ArmorFace,
    ArmorType,
    Intersection,
    next_intersection,
)

from .ballistics import (
    DispersionProfile,
    FlightOutcome,
    GunSpec,
    RangeSolution,
)

from .fleet import (
    Ship,
    ShipClass,
    load_fleet,
    save_fleet,
)

from .impact import ImpactPath

from .physics import Vector3D

from .simulation import (
    VolleyResult,
    azimuth_sweep,
    evaluate_shot,
    evaluate_volley,
    evaluate_volley_parallel,
    take_shot,
)

__all__ = [
    # Ammo module
    "Ammo",
    "ApAmmo",
    "GunMount",
    "HeAmmo",
    "ImpactType",
    "TargetConfiguration",
    "compute_damage",
    # Armor module
    "ArmorFace",
    "ArmorType",
    "Intersection",
    "next_intersection",
    # Ballistics module
    "DispersionProfile",
    "FlightOutcome",
    "GunSpec",
    "RangeSolution",
    # Fleet module
    "Ship",
    "ShipClass",
    "load_fleet",
    "save_fleet",
    # Impact module
    "ImpactPath",
    # Physics module
    "Vector3D",
    # Simulation module
    "VolleyResult",
    "azimuth_sweep",
    "evaluate_shot",
    "evaluate_volley",
    "evaluate_volley_parallel",
    "take_shot",
]
