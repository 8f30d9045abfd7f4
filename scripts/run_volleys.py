#!/usr/bin/env python3
"""
Fire volleys from one ship at another and print damage statistics.

Loads a parsed fleet file, or builds one by downloading every vehicle when
the file does not exist yet, reports matchmaking counts, then sweeps firing
azimuths around the target.

Usage:
    python scripts/run_volleys.py --fleet ships.json --attacker Pensacola --target Nagato
    python scripts/run_volleys.py --fleet ships.json --attacker Gearing --target Yamato --range 12000 --shots 500
"""

import argparse
import sys
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gunnery.config import Settings, init_logging
from gunnery.download import CachedDownloader
from gunnery.fleet import (
    count_possible_battles,
    download_vehicle,
    find_ship,
    get_ship_list,
    load_fleet,
    save_fleet,
)
from gunnery.physics import Vector3D
from gunnery.simulation import azimuth_sweep, evaluate_shot


def build_fleet(settings: Settings, fleet_path: Path) -> list:
    """Download every vehicle and save the parsed fleet."""
    downloader = CachedDownloader(settings.cache_dir)
    try:
        ships = []
        for vehicle_id in get_ship_list(downloader):
            ship = download_vehicle(vehicle_id, downloader)
            if ship is not None:
                ships.append(ship)
    finally:
        downloader.close()
    save_fleet(ships, fleet_path)
    return ships


def main():
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(
        description="Fire volleys between two ships of a parsed fleet",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--fleet",
        type=Path,
        default=Path("ships.json"),
        help="Parsed fleet file (downloaded and created if missing)",
    )
    parser.add_argument("--attacker", required=True, help="Name (substring) of the firing ship")
    parser.add_argument("--target", required=True, help="Name (substring) of the target ship")
    parser.add_argument(
        "--range",
        type=float,
        default=10000.0,
        help="Firing range in meters (default: 10000)",
    )
    parser.add_argument(
        "--shots",
        type=int,
        default=settings.shots,
        help=f"Shots per volley (default: {settings.shots})",
    )
    parser.add_argument(
        "--ammo",
        type=int,
        default=0,
        help="Index of the ammo type in the attacker's first mount (default: 0)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=settings.seed,
        help="Random seed for reproducible volleys",
    )
    args = parser.parse_args()

    settings.seed = args.seed
    init_logging(settings)
    rng = settings.make_rng()

    if args.fleet.exists():
        ships = load_fleet(args.fleet)
    else:
        print(f"Fleet file {args.fleet} not found, downloading vehicles...")
        ships = build_fleet(settings, args.fleet)

    try:
        attacker = find_ship(ships, args.attacker)
        target = find_ship(ships, args.target)
    except KeyError as e:
        print(f"Error: {e}")
        sys.exit(1)

    opponents = [ship.name for ship in ships if ship.can_battle_with(attacker)]
    print(f"{attacker.name} can battle with {len(opponents)} ships")
    print(f"Found {count_possible_battles(ships)} possible battles")

    config = attacker.configurations[0]
    if not config.artillery or not config.artillery[0].ammo:
        print(f"Error: {attacker.name} has no main battery")
        sys.exit(1)
    mount = config.artillery[0]
    ammo = mount.ammo[args.ammo]
    target_config = target.configurations[0]

    damage, impact = evaluate_shot(ammo, target_config, args.range, 30.0, Vector3D.zero(), rng)
    print(f"\nSingle {ammo.kind} shot at 30 degrees: {damage:.1f} ({impact.value})")

    print(f"\n{attacker.name} -> {target.name} at {args.range:.0f} m, {args.shots} shots per volley")
    print("=" * 60)
    start = time.perf_counter()
    sweep = azimuth_sweep(args.shots, mount.dispersion, ammo, target_config, args.range, rng=rng)
    elapsed = time.perf_counter() - start
    for azimuth, result in sweep:
        print(f"  {azimuth:5.0f} deg: {result}")

    total_shots = args.shots * len(sweep)
    print(f"\nComputed {total_shots} shots in {elapsed:.2f}s, {total_shots / elapsed:.0f} shots/sec")


if __name__ == "__main__":
    main()
