"""clusterdelta: cluster delta tracking and telemetry shipping for fleet optimization."""

__version__ = "0.4.0"
