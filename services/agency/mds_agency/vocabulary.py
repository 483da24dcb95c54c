"""
Per-modality vocabularies for vehicle events and states.

Each modality gets one ModalityRules value. The event validator selects the
rules once from the device's modality and checks everything against them.
"""

from dataclasses import dataclass
from typing import FrozenSet, Optional

MODALITIES = ('micromobility', 'taxi', 'tnc')

VEHICLE_TYPES = frozenset({'bicycle', 'car', 'scooter', 'moped', 'other'})

PROPULSION_TYPES = frozenset({'human', 'electric', 'electric_assist', 'hybrid', 'combustion'})

ACCESSIBILITY_OPTIONS = frozenset({'wheelchair_accessible'})

TRIP_STATES = frozenset({'on_trip', 'reserved', 'stopped'})

RESERVATION_METHODS = frozenset({'app', 'street_hail', 'phone_dispatch'})

RESERVATION_TYPES = frozenset({'on_demand', 'scheduled'})

# Events that open or close a trip within the jurisdiction
TRIP_BOUNDARY_EVENTS = frozenset({
    'trip_start',
    'trip_end',
    'trip_enter_jurisdiction',
    'trip_leave_jurisdiction',
})

MICRO_MOBILITY_VEHICLE_STATES = frozenset({
    'available',
    'elsewhere',
    'non_operational',
    'on_trip',
    'removed',
    'reserved',
    'unknown',
})

MICRO_MOBILITY_VEHICLE_EVENTS = frozenset({
    'agency_drop_off',
    'agency_pick_up',
    'battery_charged',
    'battery_low',
    'comms_lost',
    'comms_restored',
    'compliance_pick_up',
    'decommissioned',
    'located',
    'maintenance',
    'maintenance_pick_up',
    'off_hours',
    'on_hours',
    'provider_drop_off',
    'rebalance_pick_up',
    'reservation_cancel',
    'reservation_start',
    'system_resume',
    'system_suspend',
    'trip_cancel',
    'trip_end',
    'trip_enter_jurisdiction',
    'trip_leave_jurisdiction',
    'trip_start',
    'unspecified',
})

TAXI_VEHICLE_STATES = frozenset({
    'available',
    'elsewhere',
    'non_operational',
    'on_trip',
    'removed',
    'reserved',
    'stopped',
    'unknown',
})

TAXI_VEHICLE_EVENTS = frozenset({
    'comms_lost',
    'comms_restored',
    'decommissioned',
    'driver_cancellation',
    'enter_jurisdiction',
    'leave_jurisdiction',
    'maintenance',
    'maintenance_end',
    'maintenance_start',
    'passenger_cancellation',
    'provider_cancellation',
    'recommissioned',
    'reservation_start',
    'reservation_stop',
    'service_end',
    'service_start',
    'trip_end',
    'trip_resume',
    'trip_start',
    'trip_stop',
    'unspecified',
})

TAXI_TRIP_EXIT_EVENTS = frozenset({
    'driver_cancellation',
    'leave_jurisdiction',
    'passenger_cancellation',
    'provider_cancellation',
    'reservation_stop',
    'trip_end',
})

TNC_VEHICLE_STATES = frozenset({
    'available',
    'elsewhere',
    'non_operational',
    'on_trip',
    'removed',
    'reserved',
    'stopped',
    'unknown',
})

TNC_VEHICLE_EVENTS = frozenset({
    'comms_lost',
    'comms_restored',
    'driver_cancellation',
    'enter_jurisdiction',
    'leave_jurisdiction',
    'maintenance',
    'passenger_cancellation',
    'provider_cancellation',
    'reservation_start',
    'reservation_stop',
    'service_end',
    'service_start',
    'trip_end',
    'trip_resume',
    'trip_start',
    'trip_stop',
    'unspecified',
})

TNC_TRIP_EXIT_EVENTS = frozenset({
    'driver_cancellation',
    'leave_jurisdiction',
    'passenger_cancellation',
    'provider_cancellation',
    'reservation_stop',
    'trip_end',
})


@dataclass(frozen=True)
class ModalityRules:
    """Legal vocabulary for one modality"""
    modality: str
    events: FrozenSet[str]
    states: FrozenSet[str]
    # None means trip_state is never demanded for this modality
    trip_exit_events: Optional[FrozenSet[str]] = None

    def requires_trip_state(self, event_types, vehicle_state: str) -> bool:
        """trip_state is required while on a trip that this event does not end"""
        if self.trip_exit_events is None:
            return False
        return vehicle_state in TRIP_STATES and self.trip_exit_events.isdisjoint(event_types)


MODALITY_RULES = {
    'micromobility': ModalityRules(
        modality='micromobility',
        events=MICRO_MOBILITY_VEHICLE_EVENTS,
        states=MICRO_MOBILITY_VEHICLE_STATES,
    ),
    'taxi': ModalityRules(
        modality='taxi',
        events=TAXI_VEHICLE_EVENTS,
        states=TAXI_VEHICLE_STATES,
        trip_exit_events=TAXI_TRIP_EXIT_EVENTS,
    ),
    'tnc': ModalityRules(
        modality='tnc',
        events=TNC_VEHICLE_EVENTS,
        states=TNC_VEHICLE_STATES,
        trip_exit_events=TNC_TRIP_EXIT_EVENTS,
    ),
}


def rules_for(modality: str) -> Optional[ModalityRules]:
    return MODALITY_RULES.get(modality)
