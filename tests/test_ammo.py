"""
Tests for shell path traversal and damage resolution.

Tests cover:
- ImpactPath entry, ricochet and penetration steps
- Ricochet probability and thickness normalization rules
- HE resolution (miss, thickness gate, citadel, penetration)
- AP resolution (non-penetration, citadel via fuse, over-penetration,
  torpedo belt, plain penetration, ricochet)
- Variant dispatch
- Termination on arbitrary meshes

Plates are placed perpendicular to the X axis and shells fly along +X with
the aim point at the origin unless a test says otherwise.
"""

import math
import random

import pytest

from gunnery.ammo import (
    ApAmmo,
    HeAmmo,
    ImpactType,
    TargetConfiguration,
    compute_damage,
    effective_thickness,
    resolve_ap,
    resolve_he,
    ricochet_probability,
    OVER_PENETRATION_DAMAGE_FRACTION,
    PENETRATION_DAMAGE_FRACTION,
)
from gunnery.armor import ArmorFace, ArmorType
from gunnery.impact import ImpactPath, ENTRY_STANDOFF_M
from gunnery.physics import Vector3D


ALPHA = 9000.0
FORWARD = Vector3D(1.0, 0.0, 0.0)
ORIGIN = Vector3D(0.0, 0.0, 0.0)


# =============================================================================
# HELPERS AND FIXTURES
# =============================================================================

def plate_at_x(x: float, thickness: float, armor_type: ArmorType = ArmorType.NORMAL) -> ArmorFace:
    """Triangle in the plane X = x that contains the X axis."""
    return ArmorFace(
        vertices=(
            Vector3D(x, -10.0, -10.0),
            Vector3D(x, -10.0, 30.0),
            Vector3D(x, 30.0, -10.0),
        ),
        thickness_mm=thickness,
        armor_type=armor_type,
    )


def tilted_plate(grazing_deg: float, thickness: float) -> ArmorFace:
    """Plate through the origin struck at ``grazing_deg`` by a +X shell."""
    a = math.radians(grazing_deg)
    along = Vector3D(math.cos(a), math.sin(a), 0.0)
    up = Vector3D(0.0, 0.0, 1.0)
    return ArmorFace(
        vertices=(
            along * -10.0 + up * -10.0,
            along * 30.0 + up * -10.0,
            along * -10.0 + up * 30.0,
        ),
        thickness_mm=thickness,
    )


def box_mesh(half: float, thickness: float, armor_type: ArmorType = ArmorType.NORMAL) -> list[ArmorFace]:
    """Closed axis-aligned cube of 12 triangles centred on the origin."""
    h = half
    corners = [Vector3D(x, y, z) for x in (-h, h) for y in (-h, h) for z in (-h, h)]
    quads = [
        (0, 1, 3, 2), (4, 6, 7, 5),  # x = -h, x = +h
        (0, 4, 5, 1), (2, 3, 7, 6),  # y = -h, y = +h
        (0, 2, 6, 4), (1, 5, 7, 3),  # z = -h, z = +h
    ]
    faces = []
    for a, b, c, d in quads:
        faces.append(ArmorFace((corners[a], corners[b], corners[c]), thickness, armor_type))
        faces.append(ArmorFace((corners[a], corners[c], corners[d]), thickness, armor_type))
    return faces


def target(*faces: ArmorFace) -> TargetConfiguration:
    return TargetConfiguration(armor=list(faces), name="test target")


@pytest.fixture
def ap_shell() -> ApAmmo:
    """300 mm AP shell with a short fuse that arms on 25 mm."""
    return ApAmmo(
        diameter_m=0.3,
        damage=ALPHA,
        detonator_s=0.033,
        detonator_threshold_mm=25.0,
    )


@pytest.fixture
def citadel_target() -> TargetConfiguration:
    """50 mm outer plate, then a 20 mm citadel plate 20 m behind it."""
    return target(
        plate_at_x(0.0, 50.0),
        plate_at_x(20.0, 20.0, ArmorType.CITADEL),
    )


# =============================================================================
# IMPACT PATH
# =============================================================================

class TestImpactPath:
    """Tests for the mesh walker."""

    def test_enter_finds_first_plate(self, citadel_target):
        entry = ImpactPath.enter(citadel_target, FORWARD, ORIGIN)
        assert entry is not None
        path, face, hit = entry
        assert face is citadel_target.armor[0]
        assert hit.t == pytest.approx(ENTRY_STANDOFF_M)
        assert path.position.is_close(ORIGIN)
        assert path.mesh is citadel_target.armor

    def test_enter_miss(self, citadel_target):
        assert ImpactPath.enter(citadel_target, FORWARD, Vector3D(0, 100, 100)) is None

    def test_enter_from_aim_point_behind_plates(self, citadel_target):
        """The entry ray starts behind the aim point, so plates past it still count."""
        entry = ImpactPath.enter(citadel_target, FORWARD, Vector3D(50.0, 0.0, 0.0))
        assert entry is not None
        assert entry[1] is citadel_target.armor[0]

    def test_penetrate_continues_straight(self, citadel_target):
        path, _, _ = ImpactPath.enter(citadel_target, FORWARD, ORIGIN)
        face, hit = path.penetrate()
        assert face is citadel_target.armor[1]
        assert hit.point.is_close(Vector3D(20.0, 0.0, 0.0))
        assert path.direction == FORWARD
        assert path.penetrate() is None

    def test_ricochet_switches_direction(self):
        plate = tilted_plate(20.0, 50.0)
        path, face, _ = ImpactPath.enter(target(plate), FORWARD, ORIGIN)
        expected = face.reflect(FORWARD)
        assert path.ricochet() is None
        assert path.direction.is_close(expected)

    def test_ricochet_into_second_plate(self):
        floor = ArmorFace(
            vertices=(Vector3D(-50, 0, -50), Vector3D(100, 0, -50), Vector3D(-50, 0, 100)),
            thickness_mm=30.0,
        )
        incoming = Vector3D(1.0, -1.0, 0.0).normalized()
        reflected = floor.reflect(incoming)
        # A wall across the reflected ray, 5 m from the floor hit point
        wall_center = reflected * 5.0
        side = Vector3D(0.0, 0.0, 1.0)
        across = reflected.cross(side).normalized()
        wall = ArmorFace(
            vertices=(
                wall_center + across * -10.0 + side * -10.0,
                wall_center + across * 30.0 + side * -10.0,
                wall_center + across * -10.0 + side * 30.0,
            ),
            thickness_mm=40.0,
        )
        path, face, _ = ImpactPath.enter(target(floor, wall), incoming, ORIGIN)
        assert face is floor
        next_face, hit = path.ricochet()
        assert next_face is wall
        assert hit.point.is_close(wall_center, tol=1e-6)
        assert path.position.is_close(wall_center, tol=1e-6)


# =============================================================================
# RULES
# =============================================================================

class TestRicochetProbability:
    """Tests for the ricochet decision rule."""

    @pytest.mark.parametrize(
        "angle,expected",
        [
            (0.0, 1.0),
            (29.9, 1.0),
            (30.0, 0.0),
            (37.5, 0.5),
            (44.0, 14.0 / 15.0),
            (45.0, 0.0),
            (90.0, 0.0),
        ],
        ids=["grazing", "just_below_30", "at_30", "midway", "just_below_45", "at_45", "perpendicular"],
    )
    def test_angle_bands(self, angle, expected):
        assert ricochet_probability(300.0, 50.0, angle) == pytest.approx(expected)

    def test_overmatched_plate_never_ricochets(self):
        # 300 / 14.3 = 20.98 mm
        assert ricochet_probability(300.0, 20.0, 5.0) == 0.0

    def test_plate_at_overmatch_limit_can_ricochet(self):
        assert ricochet_probability(300.0, 300.0 / 14.3, 5.0) == 1.0


class TestEffectiveThickness:
    """Tests for obliquity normalization."""

    def test_perpendicular_keeps_six_degree_allowance(self):
        assert effective_thickness(50.0, 90.0) == pytest.approx(50.0 / math.cos(math.radians(6.0)))

    def test_oblique_plate_is_thicker(self):
        assert effective_thickness(50.0, 40.0) > effective_thickness(50.0, 80.0)

    def test_angle_floored_at_zero(self):
        assert effective_thickness(50.0, 3.0) == effective_thickness(50.0, 6.0)


# =============================================================================
# HE RESOLUTION
# =============================================================================

class TestHeResolution:
    """Tests for single-plate HE resolution."""

    def test_miss(self):
        shell = HeAmmo(damage=ALPHA, piercing_mm=100.0)
        assert resolve_he(shell, target(), FORWARD, ORIGIN) == (0.0, ImpactType.MISS)

    @pytest.mark.parametrize("grazing_deg", [10.0, 35.0, 60.0, 89.0])
    def test_penetration_at_any_angle(self, grazing_deg):
        """Piercing 100 mm against a 30 mm Normal plate deals a third of alpha."""
        shell = HeAmmo(damage=ALPHA, piercing_mm=100.0)
        damage, impact = resolve_he(shell, target(tilted_plate(grazing_deg, 30.0)), FORWARD, ORIGIN)
        assert impact == ImpactType.PENETRATION
        assert damage == pytest.approx(ALPHA / 3.0)

    @pytest.mark.parametrize("grazing_deg", [10.0, 35.0, 60.0, 89.0])
    def test_thickness_gate_at_any_angle(self, grazing_deg):
        shell = HeAmmo(damage=ALPHA, piercing_mm=29.0)
        result = resolve_he(shell, target(tilted_plate(grazing_deg, 30.0)), FORWARD, ORIGIN)
        assert result == (0.0, ImpactType.NON_PENETRATION)

    def test_piercing_equal_to_thickness_penetrates(self):
        shell = HeAmmo(damage=ALPHA, piercing_mm=30.0)
        _, impact = resolve_he(shell, target(plate_at_x(0.0, 30.0)), FORWARD, ORIGIN)
        assert impact == ImpactType.PENETRATION

    def test_citadel_plate(self):
        shell = HeAmmo(damage=ALPHA, piercing_mm=100.0)
        damage, impact = resolve_he(
            shell, target(plate_at_x(0.0, 30.0, ArmorType.CITADEL)), FORWARD, ORIGIN
        )
        assert impact == ImpactType.CITADEL
        assert damage == pytest.approx(ALPHA / 3.0)

    def test_only_first_plate_matters(self):
        shell = HeAmmo(damage=ALPHA, piercing_mm=40.0)
        mesh = target(plate_at_x(0.0, 30.0), plate_at_x(10.0, 400.0))
        _, impact = resolve_he(shell, mesh, FORWARD, ORIGIN)
        assert impact == ImpactType.PENETRATION


# =============================================================================
# AP RESOLUTION
# =============================================================================

class TestApResolution:
    """Tests for the iterative AP traversal."""

    def test_miss(self, ap_shell):
        result = resolve_ap(ap_shell, target(), 400.0, 500.0, FORWARD, ORIGIN)
        assert result == (0.0, ImpactType.MISS)

    def test_citadel_hit_on_fuse(self, ap_shell, citadel_target):
        """
        400 mm penetration through a perpendicular 50 mm plate arms the
        fuse (16.5 m at 500 m/s); it expires on reaching the citadel plate
        20 m further on, inside the citadel.
        """
        damage, impact = resolve_ap(ap_shell, citadel_target, 400.0, 500.0, FORWARD, ORIGIN)
        assert impact == ImpactType.CITADEL
        assert damage == pytest.approx(ALPHA)

    def test_first_plate_failure(self, ap_shell, citadel_target):
        result = resolve_ap(ap_shell, citadel_target, 10.0, 500.0, FORWARD, ORIGIN)
        assert result == (0.0, ImpactType.NON_PENETRATION)

    def test_over_penetration_without_fuse(self, citadel_target):
        shell = ApAmmo(diameter_m=0.3, damage=ALPHA, detonator_s=0.033, detonator_threshold_mm=100.0)
        damage, impact = resolve_ap(shell, citadel_target, 400.0, 500.0, FORWARD, ORIGIN)
        assert impact == ImpactType.OVER_PENETRATION
        assert damage == pytest.approx(OVER_PENETRATION_DAMAGE_FRACTION * ALPHA)

    def test_long_fuse_over_penetrates(self, citadel_target):
        shell = ApAmmo(diameter_m=0.3, damage=ALPHA, detonator_s=1.0, detonator_threshold_mm=25.0)
        _, impact = resolve_ap(shell, citadel_target, 400.0, 500.0, FORWARD, ORIGIN)
        assert impact == ImpactType.OVER_PENETRATION

    def test_torpedo_belt_absorbs(self):
        shell = ApAmmo(diameter_m=0.3, damage=ALPHA, detonator_s=1.0, detonator_threshold_mm=100.0)
        mesh = target(
            plate_at_x(0.0, 50.0),
            plate_at_x(20.0, 20.0, ArmorType.TORPEDO_PROTECTION_BELT),
        )
        result = resolve_ap(shell, mesh, 60.0, 500.0, FORWARD, ORIGIN)
        assert result == (0.0, ImpactType.TORPEDO_PROTECTION)

    def test_budget_exhausted_after_first_plate(self):
        shell = ApAmmo(diameter_m=0.3, damage=ALPHA, detonator_s=1.0, detonator_threshold_mm=100.0)
        mesh = target(plate_at_x(0.0, 50.0), plate_at_x(20.0, 20.0))
        damage, impact = resolve_ap(shell, mesh, 60.0, 500.0, FORWARD, ORIGIN)
        assert impact == ImpactType.PENETRATION
        assert damage == pytest.approx(PENETRATION_DAMAGE_FRACTION * ALPHA)

    def test_exiting_citadel_detonates_as_penetration(self):
        """Crossing two citadel plates leaves the shell outside the citadel."""
        shell = ApAmmo(diameter_m=0.3, damage=ALPHA, detonator_s=0.05, detonator_threshold_mm=25.0)
        mesh = target(
            plate_at_x(0.0, 50.0, ArmorType.CITADEL),
            plate_at_x(30.0, 20.0, ArmorType.CITADEL),
        )
        damage, impact = resolve_ap(shell, mesh, 400.0, 500.0, FORWARD, ORIGIN)
        assert impact == ImpactType.PENETRATION
        assert damage == pytest.approx(PENETRATION_DAMAGE_FRACTION * ALPHA)

    def test_ricochet_off_single_plate(self, ap_shell):
        """A plate struck at 20 deg (70 deg off its normal) deflects the shell away."""
        result = resolve_ap(ap_shell, target(tilted_plate(20.0, 50.0)), 400.0, 500.0, FORWARD, ORIGIN)
        assert result == (0.0, ImpactType.RICOCHET)

    def test_overmatch_prevents_ricochet(self, ap_shell):
        result = resolve_ap(ap_shell, target(tilted_plate(20.0, 15.0)), 400.0, 500.0, FORWARD, ORIGIN)
        assert result[1] == ImpactType.OVER_PENETRATION

    def test_probabilistic_ricochet_uses_rng(self, ap_shell):
        mesh = target(tilted_plate(37.5, 50.0))
        outcomes = {
            resolve_ap(ap_shell, mesh, 400.0, 500.0, FORWARD, ORIGIN, random.Random(seed))[1]
            for seed in range(40)
        }
        assert outcomes == {ImpactType.RICOCHET, ImpactType.OVER_PENETRATION}

    def test_seeded_rng_is_reproducible(self, ap_shell):
        mesh = target(tilted_plate(37.5, 50.0))
        a = [resolve_ap(ap_shell, mesh, 400.0, 500.0, FORWARD, ORIGIN, random.Random(9)) for _ in range(5)]
        b = [resolve_ap(ap_shell, mesh, 400.0, 500.0, FORWARD, ORIGIN, random.Random(9)) for _ in range(5)]
        assert a == b

    def test_step_cap_detonates_in_place(self, monkeypatch, caplog):
        """A path that keeps returning the same plate stops after 2 * faces + 2 visits."""
        plate = plate_at_x(0.0, 50.0, ArmorType.CITADEL)
        looping = TargetConfiguration(armor=[plate], name="loop")
        hit = plate.intersect(Vector3D(-1.0, 0.0, 0.0), FORWARD)
        monkeypatch.setattr(ImpactPath, "penetrate", lambda self: (plate, hit))
        shell = ApAmmo(diameter_m=0.3, damage=ALPHA, detonator_s=1.0, detonator_threshold_mm=100.0)

        damage, impact = resolve_ap(shell, looping, 1000.0, 500.0, FORWARD, ORIGIN)

        # Four citadel visits leave the shell outside the citadel
        assert impact == ImpactType.PENETRATION
        assert damage == pytest.approx(PENETRATION_DAMAGE_FRACTION * ALPHA)
        assert "exceeded 4 plates" in caplog.text
        assert "loop" in caplog.text

    def test_step_cap_odd_parity_is_citadel(self, monkeypatch, caplog):
        """With two faces the cap is six visits; five on the citadel plate leaves odd parity."""
        citadel = plate_at_x(0.0, 50.0, ArmorType.CITADEL)
        outer = plate_at_x(-5.0, 10.0)
        looping = TargetConfiguration(armor=[outer, citadel], name="loop")
        hit = citadel.intersect(Vector3D(-1.0, 0.0, 0.0), FORWARD)
        monkeypatch.setattr(ImpactPath, "penetrate", lambda self: (citadel, hit))
        shell = ApAmmo(diameter_m=0.3, damage=ALPHA, detonator_s=1.0, detonator_threshold_mm=100.0)

        damage, impact = resolve_ap(shell, looping, 1000.0, 500.0, FORWARD, Vector3D(-5.0, 0.0, 0.0))

        assert impact == ImpactType.CITADEL
        assert damage == pytest.approx(ALPHA)
        assert "exceeded 6 plates" in caplog.text

    def test_terminates_on_random_hulls(self, ap_shell):
        """Every shell ends in one of the seven outcomes."""
        rng = random.Random(2024)
        hull = target(*box_mesh(10.0, 25.0), *box_mesh(5.0, 60.0, ArmorType.CITADEL))
        for _ in range(200):
            direction = Vector3D(
                rng.uniform(-1, 1), rng.uniform(-1, 0.2), rng.uniform(-1, 1)
            ).normalized()
            offset = Vector3D(rng.uniform(-12, 12), rng.uniform(-12, 12), rng.uniform(-12, 12))
            damage, impact = resolve_ap(
                ap_shell, hull, rng.uniform(0, 600), rng.uniform(300, 800), direction, offset, rng
            )
            assert impact in set(ImpactType)
            assert 0.0 <= damage <= ALPHA


# =============================================================================
# DISPATCH
# =============================================================================

class TestComputeDamage:
    """Tests for shell variant dispatch."""

    def test_dispatches_he(self, citadel_target):
        shell = HeAmmo(damage=ALPHA, piercing_mm=100.0)
        assert compute_damage(shell, citadel_target, 0.0, 0.0, FORWARD, ORIGIN) == resolve_he(
            shell, citadel_target, FORWARD, ORIGIN
        )

    def test_dispatches_ap(self, ap_shell, citadel_target):
        damage, impact = compute_damage(ap_shell, citadel_target, 400.0, 500.0, FORWARD, ORIGIN)
        assert impact == ImpactType.CITADEL
        assert damage == pytest.approx(ALPHA)

    def test_he_ignores_penetration_capacity(self, citadel_target):
        shell = HeAmmo(damage=ALPHA, piercing_mm=100.0)
        _, impact = compute_damage(shell, citadel_target, 0.0, 0.0, FORWARD, ORIGIN)
        assert impact == ImpactType.PENETRATION

    def test_unknown_variant_raises(self, citadel_target):
        with pytest.raises(TypeError):
            compute_damage("SAP", citadel_target, 400.0, 500.0, FORWARD, ORIGIN)
