"""Tests for the activity event model."""

import json
import math

import pytest

from vigil.errors import InvalidPayload
from vigil.events import (
	EmergencyButtonPressed,
	EventType,
	FallDetected,
	InactivityAlert,
	LocationFix,
	LocationUpdate,
	event_from_payload,
	serialize_event,
)


class TestLocationFix:
	def test_inclusive_bounds_accepted(self):
		assert LocationFix(latitude=90.0, longitude=-180.0).is_valid
		assert LocationFix(latitude=-90.0, longitude=180.0).is_valid

	def test_out_of_range_rejected(self):
		assert not LocationFix(latitude=90.0001, longitude=0.0).is_valid
		assert not LocationFix(latitude=0.0, longitude=200.0).is_valid

	def test_non_finite_rejected(self):
		assert not LocationFix(latitude=math.nan, longitude=0.0).is_valid
		assert not LocationFix(latitude=0.0, longitude=math.inf).is_valid

	def test_negative_accuracy_rejected(self):
		assert not LocationFix(latitude=0.0, longitude=0.0, accuracy=-1.0).is_valid
		assert LocationFix(latitude=0.0, longitude=0.0, accuracy=None).is_valid

	def test_unknown_placeholder(self):
		fix = LocationFix.unknown()
		assert (fix.latitude, fix.longitude, fix.accuracy) == (0.0, 0.0, 0.0)
		assert fix.is_valid

	def test_dict_round_trip(self):
		fix = LocationFix(latitude=1.5, longitude=-2.5, accuracy=None, timestamp=123.0)
		assert LocationFix.from_dict(fix.to_dict()) == fix


class TestPayload:
	def test_fall_payload_shape(self):
		event = FallDetected(
			user_id=7,
			location=LocationFix(latitude=1.0, longitude=2.0, accuracy=3.0),
			fall_intensity=3.1,
			inactive_duration_sec=300,
		)
		assert event.to_payload() == {
			"user_id": 7,
			"type": "FALL_DETECTED",
			"location": {"latitude": 1.0, "longitude": 2.0, "accuracy": 3.0},
			"fall_intensity": 3.1,
			"inactive_duration_sec": 300,
		}

	def test_variant_fields(self):
		loc = LocationFix.unknown()
		assert set(LocationUpdate(user_id=1, location=loc).to_payload()) == {
			"user_id", "type", "location", "steps", "distance_km",
		}
		assert set(InactivityAlert(user_id=1, location=loc).to_payload()) == {
			"user_id", "type", "location", "inactive_duration_sec",
		}
		assert set(EmergencyButtonPressed(user_id=1, location=loc).to_payload()) == {
			"user_id", "type", "location",
		}

	def test_created_at_not_on_wire(self):
		event = EmergencyButtonPressed(user_id=1, location=LocationFix.unknown(), created_at=5.0)
		assert "created_at" not in event.to_payload()

	def test_serialization_is_compact_json(self):
		event = EmergencyButtonPressed(user_id=1, location=LocationFix(latitude=1.0, longitude=2.0))
		body = serialize_event(event)
		assert " " not in body
		assert json.loads(body)["type"] == EventType.EMERGENCY_BUTTON_PRESSED.value

	def test_serialization_is_deterministic(self):
		event = LocationUpdate(user_id=3, location=LocationFix(latitude=1.0, longitude=2.0), steps=12, distance_km=0.5)
		assert serialize_event(event) == serialize_event(event)

	def test_from_payload_round_trip(self):
		event = InactivityAlert(user_id=9, location=LocationFix(latitude=10.0, longitude=20.0, accuracy=None), inactive_duration_sec=301)
		rebuilt = event_from_payload(serialize_event(event))
		assert isinstance(rebuilt, InactivityAlert)
		assert rebuilt.to_payload() == event.to_payload()

	def test_from_payload_unknown_type(self):
		with pytest.raises(InvalidPayload):
			event_from_payload({"user_id": 1, "type": "NOPE", "location": {"latitude": 0, "longitude": 0}})

	def test_from_payload_missing_location(self):
		with pytest.raises(InvalidPayload):
			event_from_payload({"user_id": 1, "type": "FALL_DETECTED"})


class TestValidate:
	def test_valid_event(self):
		LocationUpdate(user_id=1, location=LocationFix(latitude=90.0, longitude=-180.0)).validate()

	def test_latitude_just_out_of_range(self):
		with pytest.raises(InvalidPayload):
			EmergencyButtonPressed(user_id=1, location=LocationFix(latitude=90.0001, longitude=0.0)).validate()

	def test_user_id_must_be_positive_int(self):
		loc = LocationFix.unknown()
		for bad in (0, -1, True, "7"):
			with pytest.raises(InvalidPayload):
				EmergencyButtonPressed(user_id=bad, location=loc).validate()

	def test_negative_steps_rejected(self):
		with pytest.raises(InvalidPayload):
			LocationUpdate(user_id=1, location=LocationFix.unknown(), steps=-3).validate()

	def test_nan_intensity_rejected(self):
		with pytest.raises(InvalidPayload):
			FallDetected(user_id=1, location=LocationFix.unknown(), fall_intensity=math.nan).validate()
