"""Madison Metro bus schedules with live BusTime arrivals."""

__version__ = "0.1.0"
