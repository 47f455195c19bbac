#!/usr/bin/env python3
# main.py
"""
Command-Line Interface for the AmbuTrack dispatch service.

Runs the HTTP server, or plays one emergency end to end in the terminal
without any client: register an ambulance, book a request, accept it and
drive the ambulance to the patient.

Usage:
    python main.py serve                    # Run the API server
    python main.py serve --port 9000        # Run on another port
    python main.py demo                     # End-to-end scenario, straight-line routes
    python main.py demo --road-routing      # Same, asking OSRM for the road route
    python main.py --list-hospitals         # Show the seeded hospitals

Exit Codes:
    0: Success
    1: Data loading error
    2: Simulation error
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Dict, List, Optional

from ambutrack import config, utils
from ambutrack.dispatch import find_nearest_ambulance, rank_hospitals
from ambutrack.errors import DispatchError
from ambutrack.lifecycle import RequestLifecycle
from ambutrack.routing import RouteEstimator
from ambutrack.simulator import LocationSimulator, run_route_simulation
from ambutrack.store import DispatchStore

logger = logging.getLogger("ambutrack")


# Demo scenario: one driver in central Delhi, one patient a few km south
DEMO_DRIVER: Dict[str, object] = {
    "driver_id": "d1",
    "driver_name": "Demo Driver",
    "driver_email": "d1@example.com",
    "phone": "+91 9000000001",
    "lat": 28.61,
    "lng": 77.20,
    "type": "government",
}

DEMO_PATIENT: Dict[str, object] = {
    "patient_name": "A",
    "patient_phone": "123",
    "emergency": "chest pain",
    "lat": 28.58,
    "lng": 77.21,
}


def print_header() -> None:
    """Print the CLI header."""
    print("\n" + "=" * 60)
    print("  AMBUTRACK - Emergency Ambulance Dispatch")
    print("  Booking, Assignment and Live Tracking")
    print("=" * 60 + "\n")


def print_table(title: str, rows: List[Dict[str, str]]) -> None:
    """
    Print a simple two-column table.

    Args:
        title: Table heading
        rows: Dicts with 'label' and 'value' keys
    """
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60 + "\n")
    print(f"| {'Field':<25} | {'Value':<28} |")
    print("|" + "-" * 27 + "|" + "-" * 30 + "|")
    for row in rows:
        print(f"| {row['label']:<25} | {str(row['value']):<28} |")
    print("\n" + "=" * 60 + "\n")


def load_store_safe(seed: bool = True) -> Optional[DispatchStore]:
    """
    Build a store, loading the sample CSVs if asked.

    Returns:
        The store, or None if the seed files could not be read
    """
    store = DispatchStore()
    if not seed:
        return store
    try:
        ambulances, hospitals = store.load_seed_data(
            str(config.AMBULANCE_SEED_FILE), str(config.HOSPITAL_SEED_FILE)
        )
        print(f"Loaded {ambulances} ambulances and {hospitals} hospitals")
        return store
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: Failed to load seed data: {e}")
        return None


def run_demo(store: DispatchStore, road_routing: bool = False, fast: bool = True) -> int:
    """
    Walk one request through its whole lifecycle.

    Args:
        store: Store to run against
        road_routing: Ask OSRM for the route instead of a straight line
        fast: Skip the simulator's pacing delays

    Returns:
        Exit code
    """
    lifecycle = RequestLifecycle(store)
    estimator = RouteEstimator(use_road_routing=road_routing)

    try:
        ambulance = lifecycle.register_ambulance(DEMO_DRIVER)
        request = lifecycle.create_request(DEMO_PATIENT)
        print(f"Request #{request.id} from {request.patient_name}: {request.emergency}")

        nearest = find_nearest_ambulance(store, request.lat, request.lng)
        if nearest is not None:
            print(f"Nearest available ambulance: {nearest.ambulance.driver_id} "
                  f"({nearest.distance_km:.2f} km)")

        request = lifecycle.accept_request(request.id, ambulance.driver_id)
        print(f"Accepted by {request.driver_id}; ambulance is now "
              f"{store.get_ambulance_by_driver_id(ambulance.driver_id).status.value}")
    except DispatchError as e:
        print(f"ERROR: {e}")
        return 2

    route = estimator.compute_route(ambulance.lat, ambulance.lng, request.lat, request.lng)
    print(f"Route: {route}")

    if fast:
        simulator = LocationSimulator(step_delay=0.0, waypoint_tick=0.0)
    else:
        simulator = LocationSimulator()
    positions: List[tuple] = []

    def on_position(lat: float, lng: float) -> None:
        positions.append((lat, lng))
        store.update_ambulance_location(ambulance.driver_id, lat, lng)

    try:
        final = run_route_simulation(route.path, on_position, simulator, ambulance.driver_id)
    except Exception as e:
        print(f"ERROR: Simulation failed: {e}")
        return 2

    completed = lifecycle.complete_request(request.id)
    arrived = store.get_ambulance_by_driver_id(ambulance.driver_id)
    hospital = next(iter(rank_hospitals(store, request.lat, request.lng, "emergency", limit=1)), None)

    print_table("DEMO RESULT", [
        {"label": "Request", "value": f"#{completed.id} {completed.status.value}"},
        {"label": "Driver", "value": completed.driver_id},
        {"label": "Route source", "value": route.source},
        {"label": "Route distance", "value": f"{route.distance_meters / 1000:.2f} km"},
        {"label": "ETA at dispatch", "value": utils.format_eta(route.duration_seconds)},
        {"label": "Positions emitted", "value": len(positions)},
        {"label": "Final position", "value": f"{final[0]:.5f}, {final[1]:.5f}"},
        {"label": "Ambulance status", "value": arrived.status.value},
        {"label": "Nearest ER", "value": hospital.hospital.name if hospital else "N/A"},
    ])
    return 0


def list_hospitals(store: DispatchStore) -> int:
    hospitals = store.list_hospitals()
    print("\nHospitals:")
    print("-" * 60)
    for h in hospitals:
        print(f"  {h.name:35} [{h.type.value:10}] {h.rating:.1f}  {', '.join(h.specialties)}")
    return 0


def main() -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="AmbuTrack emergency dispatch CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve                     # API on AMBUTRACK_HOST:AMBUTRACK_PORT
  python main.py demo                      # Play one emergency end to end
  python main.py demo --realtime           # Same, at simulator speed
  python main.py --list-hospitals          # Show seeded hospitals
        """
    )

    parser.add_argument(
        "command",
        nargs="?",
        choices=["serve", "demo"],
        default="demo",
        help="What to run (default: demo)"
    )

    parser.add_argument(
        "--host",
        type=str,
        default=config.HOST,
        help=f"Bind address for serve (default: {config.HOST})"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=config.PORT,
        help=f"Port for serve (default: {config.PORT})"
    )

    parser.add_argument(
        "--road-routing",
        action="store_true",
        help="Use OSRM road routes in the demo"
    )

    parser.add_argument(
        "--realtime",
        action="store_true",
        help="Keep the simulator's pacing delays in the demo"
    )

    parser.add_argument(
        "--no-seed",
        action="store_true",
        help="Start with an empty store"
    )

    parser.add_argument(
        "--list-hospitals",
        action="store_true",
        help="List seeded hospitals and exit"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug logging"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve" and not args.list_hospitals:
        import uvicorn

        from ambutrack.api import create_app

        app = create_app(seed=not args.no_seed)
        uvicorn.run(app, host=args.host, port=args.port, log_level=config.LOG_LEVEL.lower())
        return 0

    print_header()

    store = load_store_safe(seed=not args.no_seed)
    if store is None:
        return 1

    if args.list_hospitals:
        return list_hospitals(store)

    return run_demo(store, road_routing=args.road_routing, fast=not args.realtime)


if __name__ == "__main__":
    sys.exit(main())
