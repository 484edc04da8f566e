"""Preprocessing: placing input geometry into the simulation box."""
