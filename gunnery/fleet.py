"""
Fleet ingestion for the naval gunnery simulator.

Turns raw vehicle records from the armor model site into the objects the
simulator fires at:
- Shell ballistics and HE/AP parameters from ammo records
- Gun mounts with their dispersion
- Armor meshes from model vertex/index groups and 4x4 transforms
- Hull configurations and ships, with tier-based matchmaking

Parsed fleets are saved to and loaded from a plain JSON document so the
site does not have to be scraped again.

Raw records use the site's field names (``bulletMass``, ``bulletDiametr``,
``alphaPiercingHE``, ...); missing fields raise KeyError and unknown ammo
or ship classes raise ValueError.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from html.parser import HTMLParser
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

import numpy as np

from .ammo import Ammo, ApAmmo, GunMount, HeAmmo, TargetConfiguration
from .armor import ArmorFace, ArmorType, mesh_size
from .ballistics import DispersionProfile, GunSpec
from .physics import Vector3D


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

SITE_URL = "https://gamemodels3d.com/games/worldofwarships"
VEHICLE_URL = SITE_URL + "/vehicles/{}"
ARMOR_MODEL_URL = SITE_URL + "/data/current/armor/{}"

COUNTRIES = (
    "japan",
    "usa",
    "germany",
    "ussr",
    "uk",
    "panasia",
    "france",
    "commonwealth",
    "italy",
    "pan_america",
    "europe",
)

# Hull maxSpeed is in knots
KNOTS_PER_MS = 1.944
# Armor model z-extent to hull length in meters
MODEL_LENGTH_SCALE = 1.53

# Tiers each tier can be matched against
BATTLE_TIERS: tuple[tuple[int, ...], ...] = (
    (1,),
    (2, 3),
    (3, 4),
    (4, 5),
    (5, 6, 7),
    (6, 7, 8),
    (7, 8, 9),
    (8, 9, 10),
    (9, 10),
    (10,),
)

VEHICLE_LINK_RE = re.compile(r"/games/worldofwarships/vehicles/(\w+\d+)")


class ShipClass(Enum):
    """Ship classes the simulator handles."""
    DESTROYER = "destroyer"
    CRUISER = "cruiser"
    BATTLESHIP = "battleship"
    AIRCRAFT_CARRIER = "aircarrier"


# Classes present on the site that are not simulated
SKIPPED_CLASSES = ("auxiliary", "submarine")


@dataclass
class Ship:
    """
    A ship with one target configuration per hull upgrade.

    Attributes:
        configurations: Hull configurations (stock first).
        tier: Ship tier, 1 to 10.
        name: Ship name.
        ship_class: Ship class.
    """
    configurations: list[TargetConfiguration] = field(default_factory=list)
    tier: int = 0
    name: str = ""
    ship_class: ShipClass = ShipClass.DESTROYER

    def can_battle_with(self, other: Ship) -> bool:
        """
        Whether two ships can be matched into the same battle.

        Ships meet when their allowed battle tiers overlap. Tiers outside
        1 to 10 never battle.
        """
        if not (1 <= self.tier <= 10 and 1 <= other.tier <= 10):
            return False
        other_tiers = BATTLE_TIERS[other.tier - 1]
        return any(tier in other_tiers for tier in BATTLE_TIERS[self.tier - 1])


class Downloader(Protocol):
    """What vehicle ingestion needs from a downloader."""

    def download(self, url: str) -> str:
        ...

    def download_with_params(self, url: str, view: str, params: str) -> str:
        ...


# =============================================================================
# RECORD PARSING
# =============================================================================

def parse_ballistics(ammo: dict) -> GunSpec:
    """Ballistics of an ammo record."""
    return GunSpec(
        mass_kg=float(ammo["bulletMass"]),
        diameter_m=float(ammo["bulletDiametr"]),
        muzzle_speed_ms=float(ammo["bulletSpeed"]),
        drag=float(ammo["bulletAirDrag"]),
        krupp=float(ammo["bulletKrupp"]),
    )


def parse_ammo(ammo: dict) -> Ammo:
    """
    Shell variant and ballistics of an ammo record.

    "CS" (semi-armor-piercing) shells are not modeled; they are loaded as a
    placeholder HE shell with unit damage and piercing.

    Raises:
        KeyError: If a required field is missing.
        ValueError: If the ammo type is unknown.
    """
    ammo_type = ammo["ammoType"]
    logger.debug("Found ammo of type %s", ammo_type)
    ballistics = parse_ballistics(ammo)
    if ammo_type == "HE":
        bullet = HeAmmo(
            damage=float(ammo["alphaDamage"]),
            piercing_mm=float(ammo["alphaPiercingHE"]),
        )
    elif ammo_type == "AP":
        bullet = ApAmmo(
            diameter_m=float(ammo["bulletDiametr"]),
            damage=float(ammo["alphaDamage"]),
            detonator_s=float(ammo["bulletDetonator"]),
            detonator_threshold_mm=float(ammo["bulletDetonatorThreshold"]),
        )
    elif ammo_type == "CS":
        logger.warning("Found unimplemented ammo type CS")
        bullet = HeAmmo(damage=1.0, piercing_mm=1.0)
    else:
        raise ValueError(f"Unknown ammo type '{ammo_type}'")
    return Ammo(bullet=bullet, ballistics=ballistics)


def parse_artillery(artillery: dict) -> list[GunMount]:
    """
    Gun mounts of an artillery component.

    Every gun of the component shares the component's dispersion.
    """
    dispersion = DispersionProfile(
        horizontal_m=float(artillery["minDistH"]),
        vertical_m=float(artillery["minDistV"]),
        max_range_m=float(artillery["maxDist"]),
        sigma=float(artillery["sigmaCount"]),
    )
    mounts = []
    for gun in artillery["guns"].values():
        ammo = tuple(parse_ammo(record) for record in gun["ammoList"].values())
        mounts.append(GunMount(dispersion=dispersion, ammo=ammo))
    return mounts


def transform_matrix(columns: list[list[float]]) -> np.ndarray:
    """
    4x4 matrix from the column-major nested list used by the model data.

    Raises:
        ValueError: If the input is not 4x4.
    """
    matrix = np.asarray(columns, dtype=float)
    if matrix.shape != (4, 4):
        raise ValueError(f"Expected a 4x4 transform, got shape {matrix.shape}")
    return matrix.T


def armor_faces_from_model(model: dict, matrix: np.ndarray) -> list[ArmorFace]:
    """
    Armor faces of one armor model, transformed into ship space.

    Args:
        model: Model record with ``objects.armor.vertices`` (flat xyz list),
               ``objects.armor.groups`` (material name + triangle indices)
               and ``materials`` (name -> type id and thickness in mm).
        matrix: 4x4 model-to-ship transform.

    Returns:
        One ArmorFace per triangle, keeping the model's winding.
    """
    armor = model["objects"]["armor"]
    points = np.asarray(armor["vertices"], dtype=float).reshape(-1, 3)
    homogeneous = np.hstack([points, np.ones((len(points), 1))])
    transformed = homogeneous @ matrix.T
    transformed = transformed[:, :3] / transformed[:, 3:4]
    vertices = [Vector3D.from_sequence(row) for row in transformed]

    faces = []
    for group in armor["groups"]:
        material = model["materials"][group["material"]]
        thickness = float(material["thickness"])
        armor_type = ArmorType.from_id(int(material["type"]))
        indices = group["indices"]
        for i in range(len(indices) // 3):
            faces.append(ArmorFace(
                vertices=(
                    vertices[indices[i * 3]],
                    vertices[indices[i * 3 + 1]],
                    vertices[indices[i * 3 + 2]],
                ),
                thickness_mm=thickness,
                armor_type=armor_type,
            ))
    return faces


def parse_armor_scheme(
    scheme: dict,
    load_model: Callable[[str], str]
) -> list[ArmorFace]:
    """
    Armor mesh of a hull from its armor scheme.

    Args:
        scheme: Mapping of part name -> {"model": file, "transform": 4x4}.
        load_model: Returns the JSON text of a model file ("" if missing).

    Returns:
        Faces of every model that could be loaded.
    """
    faces: list[ArmorFace] = []
    for part, entry in scheme.items():
        text = load_model(entry["model"])
        if not text:
            logger.warning("Armor model %s for %s is unavailable", entry["model"], part)
            continue
        faces.extend(armor_faces_from_model(json.loads(text), transform_matrix(entry["transform"])))
    logger.debug("Mesh has %d faces", len(faces))
    return faces


def parse_hull(
    hull_spec: dict,
    components: dict,
    armor: list[ArmorFace]
) -> TargetConfiguration:
    """
    Target configuration for one hull upgrade.

    Args:
        hull_spec: Upgrade record; ``components`` maps slot -> component ids.
        components: All components of the vehicle by id.
        armor: Armor mesh already parsed for this hull.
    """
    slots = hull_spec["components"]
    hull = components[slots["hull"][0]]

    artillery: list[GunMount] = []
    if "artillery" in slots:
        artillery_ids = slots["artillery"]
        if len(artillery_ids) != 1:
            logger.warning("Found an artillery of length %d", len(artillery_ids))
        artillery = parse_artillery(components[artillery_ids[0]])

    length = mesh_size(armor).z * MODEL_LENGTH_SCALE if armor else 0.0
    return TargetConfiguration(
        artillery=artillery,
        armor=armor,
        speed_ms=float(hull["maxSpeed"]) / KNOTS_PER_MS,
        length_m=length,
        name=hull["name"],
    )


def parse_vehicle(
    vehicle: dict,
    load_armor: Callable[[dict], list[ArmorFace]]
) -> Optional[Ship]:
    """
    Ship from a vehicle record.

    Args:
        vehicle: Vehicle record (``Components``, ``ShipUpgradeInfo``,
                 ``name``, ``class``, ``level``).
        load_armor: Returns the armor mesh for a hull's component slots.

    Returns:
        The Ship, or None for classes that are not simulated.

    Raises:
        ValueError: If the ship class is unknown.
    """
    name = vehicle["name"]
    class_name = vehicle["class"]
    if class_name in SKIPPED_CLASSES:
        return None
    try:
        ship_class = ShipClass(class_name)
    except ValueError:
        raise ValueError(f"Unknown ship class '{class_name}' for {name}") from None

    components = vehicle["Components"]
    configurations = []
    for key, hull_spec in vehicle["ShipUpgradeInfo"]["_Hull"].items():
        logger.debug("Found hull %s", key)
        armor = load_armor(hull_spec["components"])
        configurations.append(parse_hull(hull_spec, components, armor))

    return Ship(
        configurations=configurations,
        tier=int(vehicle["level"]),
        name=name,
        ship_class=ship_class,
    )


# =============================================================================
# PAGE SCRAPING
# =============================================================================

def extract_page_variable(page: str, name: str) -> Any:
    """
    Parse the JSON assigned to ``var <name>`` on a single page line.

    Raises:
        ValueError: If the variable is not assigned exactly once.
    """
    lines = [line for line in page.splitlines() if f"var {name}" in line]
    if len(lines) != 1:
        raise ValueError(f"Expected exactly one '{name}' variable, found {len(lines)}")
    value = lines[0].split("=", 1)[1].strip()
    return json.loads(value.rstrip(";"))


class _LinkCollector(HTMLParser):
    """Collects the href of every <a> element."""

    def __init__(self) -> None:
        super().__init__()
        self.hrefs: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        if tag != "a":
            return
        for name, value in attrs:
            if name == "href" and value:
                self.hrefs.append(value)


def find_vehicle_ids(page: str) -> list[str]:
    """Vehicle ids from the <a href> links of a country listing page, in page order."""
    collector = _LinkCollector()
    collector.feed(page)
    collector.close()
    return [
        vehicle_id
        for href in collector.hrefs
        for vehicle_id in VEHICLE_LINK_RE.findall(href)
    ]


def get_ship_list(downloader: Downloader, countries: tuple[str, ...] = COUNTRIES) -> list[str]:
    """Vehicle ids of every listed country."""
    ids: list[str] = []
    for country in countries:
        country_ids = find_vehicle_ids(downloader.download(VEHICLE_URL.format(country)))
        logger.info("Found %d ships for country %s", len(country_ids), country)
        ids.extend(country_ids)
    logger.info("Found %d ships", len(ids))
    return ids


def download_vehicle(vehicle_id: str, downloader: Downloader) -> Optional[Ship]:
    """
    Download and parse one vehicle.

    Returns:
        The Ship, or None for classes that are not simulated.
    """
    url = VEHICLE_URL.format(vehicle_id)
    vehicle = extract_page_variable(downloader.download(url), "_vehicle")

    def load_armor(slots: dict) -> list[ArmorFace]:
        params = json.dumps({slot: ids[0] for slot, ids in slots.items()})
        page = downloader.download_with_params(url, "armor", params)
        scheme = extract_page_variable(page, "scheme")
        return parse_armor_scheme(
            scheme, lambda model: downloader.download(ARMOR_MODEL_URL.format(model))
        )

    return parse_vehicle(vehicle, load_armor)


# =============================================================================
# FLEET FILES
# =============================================================================

def _ammo_to_dict(ammo: Ammo) -> dict:
    spec = ammo.ballistics
    data: dict[str, Any] = {
        "ballistics": {
            "mass_kg": spec.mass_kg,
            "diameter_m": spec.diameter_m,
            "muzzle_speed_ms": spec.muzzle_speed_ms,
            "drag": spec.drag,
            "krupp": spec.krupp,
        },
    }
    bullet = ammo.bullet
    if isinstance(bullet, HeAmmo):
        data["type"] = "HE"
        data["damage"] = bullet.damage
        data["piercing_mm"] = bullet.piercing_mm
    else:
        data["type"] = "AP"
        data["diameter_m"] = bullet.diameter_m
        data["damage"] = bullet.damage
        data["detonator_s"] = bullet.detonator_s
        data["detonator_threshold_mm"] = bullet.detonator_threshold_mm
    return data


def _ammo_from_dict(data: dict) -> Ammo:
    ballistics = GunSpec(**data["ballistics"])
    if data["type"] == "HE":
        bullet: HeAmmo | ApAmmo = HeAmmo(data["damage"], data["piercing_mm"])
    elif data["type"] == "AP":
        bullet = ApAmmo(
            data["diameter_m"], data["damage"],
            data["detonator_s"], data["detonator_threshold_mm"],
        )
    else:
        raise ValueError(f"Unknown ammo type '{data['type']}' in fleet file")
    return Ammo(bullet=bullet, ballistics=ballistics)


def ship_to_dict(ship: Ship) -> dict:
    """JSON-ready representation of a ship."""
    configurations = []
    for config in ship.configurations:
        configurations.append({
            "name": config.name,
            "speed_ms": config.speed_ms,
            "length_m": config.length_m,
            "artillery": [
                {
                    "dispersion": {
                        "horizontal_m": mount.dispersion.horizontal_m,
                        "vertical_m": mount.dispersion.vertical_m,
                        "max_range_m": mount.dispersion.max_range_m,
                        "sigma": mount.dispersion.sigma,
                    },
                    "ammo": [_ammo_to_dict(ammo) for ammo in mount.ammo],
                }
                for mount in config.artillery
            ],
            "armor": [
                {
                    "vertices": [list(v) for v in face.vertices],
                    "thickness_mm": face.thickness_mm,
                    "armor_type": face.armor_type.value,
                }
                for face in config.armor
            ],
        })
    return {
        "name": ship.name,
        "tier": ship.tier,
        "class": ship.ship_class.value,
        "configurations": configurations,
    }


def ship_from_dict(data: dict) -> Ship:
    """Inverse of ship_to_dict."""
    configurations = []
    for config in data["configurations"]:
        artillery = [
            GunMount(
                dispersion=DispersionProfile(**mount["dispersion"]),
                ammo=tuple(_ammo_from_dict(ammo) for ammo in mount["ammo"]),
            )
            for mount in config["artillery"]
        ]
        armor = [
            ArmorFace(
                vertices=tuple(Vector3D.from_sequence(v) for v in face["vertices"]),
                thickness_mm=face["thickness_mm"],
                armor_type=ArmorType(face["armor_type"]),
            )
            for face in config["armor"]
        ]
        configurations.append(TargetConfiguration(
            artillery=artillery,
            armor=armor,
            speed_ms=config["speed_ms"],
            length_m=config["length_m"],
            name=config["name"],
        ))
    return Ship(
        configurations=configurations,
        tier=data["tier"],
        name=data["name"],
        ship_class=ShipClass(data["class"]),
    )


def save_fleet(ships: list[Ship], filepath: str | Path) -> None:
    """Write parsed ships to a JSON fleet file."""
    with open(filepath, "w") as f:
        json.dump({"ships": [ship_to_dict(ship) for ship in ships]}, f)


def load_fleet(filepath: str | Path) -> list[Ship]:
    """
    Read ships from a JSON fleet file.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
    """
    with open(filepath, "r") as f:
        data = json.load(f)
    return [ship_from_dict(ship) for ship in data["ships"]]


def find_ship(ships: list[Ship], name: str) -> Ship:
    """
    First ship whose name contains ``name``.

    Raises:
        KeyError: If no ship matches.
    """
    for ship in ships:
        if name in ship.name:
            return ship
    raise KeyError(f"Ship '{name}' not found in fleet")


def count_possible_battles(ships: list[Ship]) -> int:
    """Ordered pairs of ships (including a ship with itself) that can meet."""
    return sum(1 for a in ships for b in ships if a.can_battle_with(b))
