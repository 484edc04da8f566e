"""
Field engines, phase reconstruction, initial conditions, filament extraction
and the topology and kinematics of the extracted curves.
"""
