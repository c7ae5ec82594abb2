"""Collectors that poll DPLL, GNSS and PMC data and hand results to a callback."""