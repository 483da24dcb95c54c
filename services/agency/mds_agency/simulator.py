#!/usr/bin/env python3
"""
Provider Simulator for the MDS Agency service
Registers a small scooter fleet, then reports trips and telemetry over HTTP
"""

import json
import math
import random
import time
import uuid
from typing import Callable, Dict, List, Optional, Tuple

import click
import requests
from dotenv import load_dotenv

from .utils import now

def haversine(start, end):
    """Calculate distance between two lat/lng points using Haversine formula"""
    R = 6371000  # Earth radius in meters
    φ1, λ1 = map(math.radians, start)
    φ2, λ2 = map(math.radians, end)
    dφ = φ2 - φ1
    dλ = λ2 - λ1
    a = math.sin(dφ/2)**2 + math.cos(φ1)*math.cos(φ2)*math.sin(dλ/2)**2
    return 2*R*math.atan2(math.sqrt(a), math.sqrt(1-a))

def create_sample_route() -> List[Tuple[float, float]]:
    """A loop through downtown Los Angeles"""
    return [
        (34.052235, -118.243683),
        (34.050950, -118.247450),
        (34.048270, -118.251010),
        (34.045420, -118.256640),
        (34.043780, -118.254350),
        (34.046680, -118.248240),
        (34.049920, -118.244010),
        (34.052235, -118.243683),
    ]

class VehicleSimulator:
    """Moves one vehicle along a route"""

    def __init__(self, device_id: str, route_points: List[Tuple[float, float]],
                 speed_kmh: float = 15.0, start_index: int = 0):
        self.device_id = device_id
        self.vehicle_id = f"sim-{device_id[:8]}"
        self.route_points = route_points
        self.speed_kmh = speed_kmh
        self.current_position_index = start_index % len(route_points)
        self.current_position = route_points[self.current_position_index]
        self.charge = round(random.uniform(0.6, 1.0), 2)
        self.trip_id: Optional[str] = None

    def calculate_next_position(self, time_delta_seconds: float) -> Tuple[float, float]:
        """Advance along the route by speed * time, updating self.current_position"""
        speed_ms = (self.speed_kmh * 1000) / 3600
        remaining_time = time_delta_seconds

        while remaining_time > 0:
            next_idx = (self.current_position_index + 1) % len(self.route_points)
            start = self.current_position
            end = self.route_points[next_idx]
            segment_dist = haversine(start, end)
            travel_dist = speed_ms * remaining_time

            if travel_dist >= segment_dist:
                # Reach the waypoint and keep going with the leftover time
                self.current_position = end
                self.current_position_index = next_idx
                remaining_time -= segment_dist / speed_ms if speed_ms else remaining_time
            else:
                frac = travel_dist / segment_dist
                self.current_position = (
                    start[0] + (end[0] - start[0]) * frac,
                    start[1] + (end[1] - start[1]) * frac,
                )
                remaining_time = 0

        # roughly 1% of battery per simulated minute
        self.charge = max(round(self.charge - time_delta_seconds / 6000, 4), 0.0)
        return self.current_position

    def registration(self) -> Dict:
        return {
            "device_id": self.device_id,
            "vehicle_id": self.vehicle_id,
            "vehicle_type": "scooter",
            "propulsion_types": ["electric"],
            "modality": "micromobility",
            "year": 2021,
            "mfgr": "Simulated",
            "model": "S1",
        }

    def get_telemetry(self, timestamp: int) -> Dict:
        """Telemetry in the shape providers submit it (accuracy as hdop)"""
        lat_noise = random.uniform(-0.00001, 0.00001)
        lng_noise = random.uniform(-0.00001, 0.00001)
        return {
            "device_id": self.device_id,
            "timestamp": timestamp,
            "gps": {
                "lat": round(self.current_position[0] + lat_noise, 6),
                "lng": round(self.current_position[1] + lng_noise, 6),
                "speed": round((self.speed_kmh + random.uniform(-2, 2)) / 3.6, 2),
                "heading": random.randint(0, 359),
                "hdop": round(random.uniform(1, 5), 1),
                "satellites": random.randint(6, 12),
            },
            "charge": self.charge,
        }

    def _event(self, event_types: List[str], vehicle_state: str, timestamp: int) -> Dict:
        telemetry = self.get_telemetry(timestamp)
        telemetry["gps"]["accuracy"] = telemetry["gps"].pop("hdop")
        return {
            "event_types": event_types,
            "vehicle_state": vehicle_state,
            "trip_id": self.trip_id,
            "timestamp": timestamp,
            "telemetry": telemetry,
        }

    def start_trip(self, timestamp: int) -> Dict:
        self.trip_id = str(uuid.uuid4())
        return self._event(["trip_start"], "on_trip", timestamp)

    def end_trip(self, timestamp: int) -> Dict:
        event = self._event(["trip_end"], "available", timestamp)
        self.trip_id = None
        return event

class ProviderSimulator:
    """A fleet of vehicles sharing one route and one simulated clock"""

    def __init__(self, vehicle_count: int = 3, speed_kmh: float = 15.0,
                 route: Optional[List[Tuple[float, float]]] = None,
                 clock: Callable[[], int] = now):
        route = route or create_sample_route()
        self.vehicles = [
            VehicleSimulator(str(uuid.uuid4()), route, speed_kmh, start_index=i)
            for i in range(vehicle_count)
        ]
        self.start_ms = clock()
        self.elapsed_ms = 0

    @property
    def timestamp(self) -> int:
        return self.start_ms + self.elapsed_ms

    def registrations(self) -> List[Dict]:
        return [vehicle.registration() for vehicle in self.vehicles]

    def start_trips(self) -> List[Tuple[str, Dict]]:
        return [(vehicle.device_id, vehicle.start_trip(self.timestamp)) for vehicle in self.vehicles]

    def end_trips(self) -> List[Tuple[str, Dict]]:
        return [(vehicle.device_id, vehicle.end_trip(self.timestamp)) for vehicle in self.vehicles]

    def step(self, interval_seconds: float) -> List[Dict]:
        """Advance the clock and every vehicle, returning one telemetry batch"""
        self.elapsed_ms += int(interval_seconds * 1000)
        for vehicle in self.vehicles:
            vehicle.calculate_next_position(interval_seconds)
        return [vehicle.get_telemetry(self.timestamp) for vehicle in self.vehicles]

class AgencyClient:
    """Posts simulator payloads to the agency API"""

    def __init__(self, base_url: str, provider_id: str, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"X-Provider-Id": provider_id})

    def register(self, registration: Dict) -> requests.Response:
        return self.session.post(f"{self.base_url}/vehicles", json=registration)

    def post_event(self, device_id: str, event: Dict) -> requests.Response:
        return self.session.post(f"{self.base_url}/vehicles/{device_id}/event", json=event)

    def post_telemetry(self, telemetry: List[Dict]) -> requests.Response:
        return self.session.post(f"{self.base_url}/vehicles/telemetry", json={"data": telemetry})

def _report(label: str, response: requests.Response):
    click.echo(f"{label}: {response.status_code} {response.text}")

@click.command()
@click.option('--api-url', envvar='AGENCY_API_URL', default='http://localhost:8000', help='Agency API base URL')
@click.option('--provider-id', envvar='PROVIDER_ID', default=None, help='Provider UUID (default: auto-generated)')
@click.option('--vehicles', envvar='SIM_VEHICLES', default=3, help='Number of vehicles')
@click.option('--steps', envvar='SIM_STEPS', default=10, help='Telemetry batches per trip')
@click.option('--interval', envvar='PUBLISH_INTERVAL', default=5.0, help='Seconds between telemetry batches')
@click.option('--speed', envvar='VEHICLE_SPEED_KMH', default=15.0, help='Vehicle speed in km/h')
@click.option('--dry-run', is_flag=True, help='Print payloads instead of sending them')
def main(api_url, provider_id, vehicles, steps, interval, speed, dry_run):
    """Run the provider simulator"""
    load_dotenv()

    if not provider_id:
        provider_id = str(uuid.uuid4())

    simulator = ProviderSimulator(vehicle_count=vehicles, speed_kmh=speed)

    click.echo(f"Simulating {vehicles} vehicles for provider {provider_id}")

    if dry_run:
        for registration in simulator.registrations():
            click.echo(json.dumps({"register": registration}))
        for device_id, event in simulator.start_trips():
            click.echo(json.dumps({"event": event, "device_id": device_id}))
        for _ in range(steps):
            click.echo(json.dumps({"telemetry": simulator.step(interval)}))
        for device_id, event in simulator.end_trips():
            click.echo(json.dumps({"event": event, "device_id": device_id}))
        return

    client = AgencyClient(api_url, provider_id)
    click.echo(f"Sending to {api_url}")

    try:
        for registration in simulator.registrations():
            _report(f"register {registration['device_id']}", client.register(registration))
        for device_id, event in simulator.start_trips():
            _report(f"trip_start {device_id}", client.post_event(device_id, event))

        for _ in range(steps):
            time.sleep(interval)
            _report("telemetry", client.post_telemetry(simulator.step(interval)))

        for device_id, event in simulator.end_trips():
            _report(f"trip_end {device_id}", client.post_event(device_id, event))
    except KeyboardInterrupt:
        click.echo("\nStopping simulator...")
    except requests.RequestException as e:
        raise click.ClickException(f"Agency API unreachable: {e}")

if __name__ == "__main__":
    main()
