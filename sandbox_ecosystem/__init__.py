"""
Sandbox Ecosystem Simulation

A frame-driven dinosaur ecosystem for a projected sand table. Herbivores
graze, wander and flee; predators patrol, hunt and attack; every agent
reacts to the scanned terrain (lava, deep water) and to detected hands.

Architecture: the simulator owns the population and is the source of
truth. The renderer reads agent state; the depth-sensing driver supplies
terrain grids, hazard points and calibrated bounds.
"""

__version__ = "0.1.0"
