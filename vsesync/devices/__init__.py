"""Fetchers and parsers for PTP device, DPLL, GNSS navigation and PMC data."""