"""Collection of PTP device, DPLL, GNSS and grandmaster data from cluster nodes."""

__version__ = "0.1.0"