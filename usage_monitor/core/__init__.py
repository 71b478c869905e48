"""
Core modules for Usage Monitor.

This package contains the field matcher, working-time and burn-rate
calculations, timeline and heatmap aggregation, and budget monitoring.
"""
