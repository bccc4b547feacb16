"""
geophysics — Pure calculations behind tsunami threat estimation.

Sub-modules:
    calculator  — distance, bearing, propagation speed, wave height, ETA, severity
    ocean       — coarse ocean-depth profile and ocean-basin proximity test
"""
