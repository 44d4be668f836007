"""
Hazard avoidance steering.

Applied right after role-specific AI so it biases, but never replaces,
the directed motion. Probes the 8 neighbour offsets around the agent
and accumulates repulsion from:
- bounds edges within BOUNDARY_MARGIN (weight 1 per edge)
- lava probes (weight 2)
- water probes deeper than the avoidance depth (weight 1)

All probes for one agent go through one batched terrain query.
"""

import numpy as np

from .agent import Agent
from .data_types import Bounds, TerrainType
from .terrain import TerrainQuery
from .constants import (
    BOUNDARY_MARGIN,
    AVOIDANCE_PROBE_DISTANCE,
    AVOIDANCE_LAVA_WEIGHT,
    AVOIDANCE_WATER_WEIGHT,
    AVOIDANCE_SPEED_FACTOR,
    AVOIDANCE_MIN_MAGNITUDE,
)


# Unit offsets of the 8 neighbour probes (dx, dy)
PROBE_OFFSETS = np.array(
    [(dx, dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1) if (dx, dy) != (0, 0)],
    dtype=np.float64
)


def boundary_repulsion(position: np.ndarray, bounds: Bounds, margin: float = BOUNDARY_MARGIN) -> np.ndarray:
    """Planar push away from bounds edges closer than margin"""
    push = np.zeros(2, dtype=np.float64)
    if position[0] < bounds.min_x + margin:
        push[0] += 1.0
    if position[0] > bounds.max_x - margin:
        push[0] -= 1.0
    if position[1] < bounds.min_y + margin:
        push[1] += 1.0
    if position[1] > bounds.max_y - margin:
        push[1] -= 1.0
    return push


def calculate_avoidance_vector(
    agent: Agent,
    bounds: Bounds,
    terrain: TerrainQuery,
    water_avoidance_depth: float,
    probe_distance: float = AVOIDANCE_PROBE_DISTANCE
) -> np.ndarray:
    """
    Compute the normalized avoidance direction for one agent.

    Args:
        agent: Agent to steer
        bounds: Playable area
        terrain: Terrain query interface
        water_avoidance_depth: Water deeper than this repels
        probe_distance: Probe offset from the agent

    Returns:
        3D vector [x, y, 0]; unit length, or zero if nothing repels
    """
    avoidance = np.zeros(3, dtype=np.float64)
    avoidance[:2] = boundary_repulsion(agent.position, bounds)

    probes = agent.position[:2] + PROBE_OFFSETS * probe_distance
    samples = terrain.sample_batch(probes)

    for offset, sample in zip(PROBE_OFFSETS, samples):
        if sample.terrain_type is TerrainType.LAVA:
            avoidance[:2] -= offset * AVOIDANCE_LAVA_WEIGHT
        elif sample.terrain_type is TerrainType.WATER and sample.water_depth > water_avoidance_depth:
            avoidance[:2] -= offset * AVOIDANCE_WATER_WEIGHT

    magnitude = float(np.hypot(avoidance[0], avoidance[1]))
    if magnitude > AVOIDANCE_MIN_MAGNITUDE:
        avoidance /= magnitude
    else:
        avoidance[:] = 0.0
    return avoidance


def apply_avoidance(
    agent: Agent,
    walk_speed: float,
    bounds: Bounds,
    terrain: TerrainQuery,
    water_avoidance_depth: float
):
    """
    Add the avoidance vector to agent.velocity in place.

    Args:
        agent: Agent to steer (velocity modified)
        walk_speed: Effective walk speed (speed scale applied)
    """
    avoidance = calculate_avoidance_vector(agent, bounds, terrain, water_avoidance_depth)
    if avoidance[0] != 0.0 or avoidance[1] != 0.0:
        agent.velocity += avoidance * (walk_speed * AVOIDANCE_SPEED_FACTOR)
