"""
Spawn placement.

Finds safe positions for new and respawning agents: inside the bounds,
off lava, and not in water deeper than the avoidance depth. The search
draws uniform random candidates; if none is safe the bounds centre is
used regardless of safety.
"""

import numpy as np
from typing import Dict, List, Optional

from .data_types import Bounds, TerrainType
from .species import Species, species_from_name
from .terrain import TerrainQuery
from .constants import SPAWN_ATTEMPTS, INITIAL_POPULATION


def is_position_safe(
    x: float,
    y: float,
    bounds: Bounds,
    terrain: TerrainQuery,
    water_avoidance_depth: float
) -> bool:
    """
    Safety predicate for spawning and wander targets.

    Args:
        x, y: Horizontal position
        bounds: Playable area
        terrain: Terrain query interface
        water_avoidance_depth: Maximum tolerated water depth

    Returns:
        True if in bounds, not lava, and water depth <= avoidance depth
    """
    if not bounds.contains(x, y):
        return False

    sample = terrain.sample(x, y)
    if sample.terrain_type is TerrainType.LAVA:
        return False
    if sample.water_depth > water_avoidance_depth:
        return False

    return True


def find_valid_spawn_position(
    rng: np.random.Generator,
    bounds: Bounds,
    terrain: TerrainQuery,
    water_avoidance_depth: float,
    attempts: int = SPAWN_ATTEMPTS
) -> np.ndarray:
    """
    Search for a safe spawn position.

    Args:
        rng: Simulation generator
        bounds: Playable area
        terrain: Terrain query interface
        water_avoidance_depth: Maximum tolerated water depth
        attempts: Random candidates to try before falling back

    Returns:
        Position [x, y, elevation]; bounds centre if no candidate was safe
    """
    for _ in range(attempts):
        x = bounds.min_x + rng.random() * (bounds.max_x - bounds.min_x)
        y = bounds.min_y + rng.random() * (bounds.max_y - bounds.min_y)

        if is_position_safe(x, y, bounds, terrain, water_avoidance_depth):
            elevation = terrain.sample(x, y).elevation
            return np.array([x, y, elevation], dtype=np.float64)

    center_x, center_y = bounds.center
    elevation = terrain.sample(center_x, center_y).elevation
    return np.array([center_x, center_y, elevation], dtype=np.float64)


def initial_population_plan(policy: Optional[Dict[str, int]] = None) -> List[Species]:
    """
    Expand a population policy into the ordered list of species to spawn.

    Args:
        policy: Species name -> count (defaults to INITIAL_POPULATION)

    Returns:
        One Species entry per agent, in policy order

    Raises:
        KeyError: Unknown species name in policy
    """
    if policy is None:
        policy = INITIAL_POPULATION

    plan = []
    for name, count in policy.items():
        species = species_from_name(name)
        plan.extend([species] * int(count))
    return plan
