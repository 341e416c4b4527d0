from __future__ import annotations


class ScheduleError(ValueError):
    """Base for invalid schedule input. Never retryable."""


class InvalidZone(ScheduleError):
    def __init__(self, zone: object):
        super().__init__(f"Unknown timezone: {zone!r}")
        self.zone = zone


class InvalidCivilField(ScheduleError):
    pass


class InvalidRange(ScheduleError):
    pass
