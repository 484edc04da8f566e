"""
The MODEL layer contains pure data structures.
It has NO knowledge of how fields are computed; it deals with the grid,
the input geometry, the extracted curves and the record of a run.
"""
