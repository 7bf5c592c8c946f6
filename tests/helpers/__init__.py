"""Test helper utilities for booking worker tests."""

from .fakes import FixedClock, RecordingGateway, StaticBookingLookup, make_booking, seed_booking

__all__ = ["FixedClock", "RecordingGateway", "StaticBookingLookup", "make_booking", "seed_booking"]
