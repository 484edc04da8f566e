"""
FitzHugh-Nagumo simulation of knotted and linked vortex filaments.

The package builds an initial phase field around a filament curve or a
spanning surface, evolves the excitable medium in time and extracts the
filaments at regular intervals together with their geometry and topology.
"""
