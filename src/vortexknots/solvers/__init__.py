"""Time integration of the excitable medium and the run driver."""
