"""
Agent Index API

Stable interface for the nearest-by-role and same-species neighbour
queries the AI runs every tick. The index is built once per tick from
the living agents' tick-start positions (planar x, y).

Backends:
- scipy.cKDTree (default): ball queries, O(log N) per agent
- O(n) scan: reference implementation, used for A/B comparison

Tie-breaking on equal distance is by agent_id in both backends.
"""

import numpy as np
from typing import List, Optional, Tuple
from scipy.spatial import cKDTree

from .agent import Agent
from .data_types import Role
from .species import Species, get_species_info
from .constants import USE_CKDTREE, CKDTREE_LEAFSIZE


# ============================================================================
# O(n) Implementations
# ============================================================================

def find_nearest_by_role(
    source: Agent,
    role: Role,
    agents: List[Agent],
    max_distance: float
) -> Tuple[Optional[Agent], float]:
    """
    Find the nearest living agent with the given role.

    Args:
        source: Reference agent (never returned)
        role: Role to search for
        agents: Candidate agents
        max_distance: Exclusive distance limit

    Returns:
        (nearest agent, distance), or (None, inf) if none is closer than max_distance
    """
    nearest = None
    min_distance = float('inf')

    for agent in agents:
        if not agent.is_alive or agent.agent_id == source.agent_id:
            continue
        if get_species_info(agent.species).role is not role:
            continue

        distance = float(np.hypot(agent.position[0] - source.position[0],
                                  agent.position[1] - source.position[1]))
        if distance >= max_distance:
            continue

        if distance < min_distance or (distance == min_distance and agent.agent_id < nearest.agent_id):
            min_distance = distance
            nearest = agent

    return nearest, min_distance


def neighbors_of_species(
    source: Agent,
    species: Species,
    radius: float,
    agents: List[Agent]
) -> List[Agent]:
    """
    Find living agents of one species within radius (exclusive).

    Returns:
        Agents sorted by distance then agent_id (excludes source)
    """
    neighbors = []

    for agent in agents:
        if not agent.is_alive or agent.agent_id == source.agent_id:
            continue
        if agent.species is not species:
            continue

        distance = float(np.hypot(agent.position[0] - source.position[0],
                                  agent.position[1] - source.position[1]))
        if distance < radius:
            neighbors.append((distance, agent))

    neighbors.sort(key=lambda pair: (pair[0], pair[1].agent_id))
    return [agent for _, agent in neighbors]


# ============================================================================
# AgentIndex Class
# ============================================================================

class AgentIndex:
    """
    Per-tick spatial index over living agents.

    build() snapshots positions; queries answer against that snapshot
    even if agents move later in the tick.
    """

    def __init__(self, use_ckdtree: Optional[bool] = None, leafsize: Optional[int] = None):
        """
        Args:
            use_ckdtree: Override USE_CKDTREE constant (for testing)
            leafsize: Override CKDTREE_LEAFSIZE constant (for testing)
        """
        self._agents: List[Agent] = []
        self._positions: np.ndarray = np.empty((0, 2), dtype=np.float64)
        self._tree: Optional[cKDTree] = None
        self._use_ckdtree = use_ckdtree if use_ckdtree is not None else USE_CKDTREE
        self._leafsize = leafsize if leafsize is not None else CKDTREE_LEAFSIZE

        self._is_predator: np.ndarray = np.empty(0, dtype=bool)

    def __len__(self) -> int:
        return len(self._agents)

    def build(self, agents: List[Agent]):
        """
        Build the index from the living subset of agents.

        Args:
            agents: Full population (dead/dying agents are skipped)
        """
        self._agents = [a for a in agents if a.is_alive]
        n = len(self._agents)

        if n > 0:
            self._positions = np.array([a.position[:2] for a in self._agents], dtype=np.float64)
        else:
            self._positions = np.empty((0, 2), dtype=np.float64)

        self._is_predator = np.array(
            [get_species_info(a.species).role is Role.PREDATOR for a in self._agents], dtype=bool
        )

        if self._use_ckdtree and n > 0:
            self._tree = cKDTree(self._positions, leafsize=self._leafsize)
        else:
            self._tree = None

    def _snapshot_distance(self, row: int, source: Agent) -> float:
        pos = self._positions[row]
        return float(np.hypot(pos[0] - source.position[0], pos[1] - source.position[1]))

    def find_nearest_by_role(
        self,
        source: Agent,
        role: Role,
        max_distance: float
    ) -> Tuple[Optional[Agent], float]:
        """
        Nearest living agent with role strictly closer than max_distance.

        Returns:
            (agent, distance) or (None, inf)
        """
        if self._tree is None:
            return find_nearest_by_role(source, role, self._agents, max_distance)

        want_predator = role is Role.PREDATOR
        rows = self._tree.query_ball_point(source.position[:2], r=max_distance)

        candidates = []
        for row in rows:
            agent = self._agents[row]
            if agent.agent_id == source.agent_id:
                continue
            if self._is_predator[row] != want_predator:
                continue
            distance = self._snapshot_distance(row, source)
            if distance < max_distance:
                candidates.append((distance, agent.agent_id, agent))

        if not candidates:
            return None, float('inf')

        candidates.sort(key=lambda c: (c[0], c[1]))
        return candidates[0][2], candidates[0][0]

    def neighbors_of_species(self, source: Agent, species: Species, radius: float) -> List[Agent]:
        """Living same-species agents strictly within radius, nearest first"""
        if self._tree is None:
            return neighbors_of_species(source, species, radius, self._agents)

        rows = self._tree.query_ball_point(source.position[:2], r=radius)

        neighbors = []
        for row in rows:
            agent = self._agents[row]
            if agent.agent_id == source.agent_id or agent.species is not species:
                continue
            distance = self._snapshot_distance(row, source)
            if distance < radius:
                neighbors.append((distance, agent))

        neighbors.sort(key=lambda pair: (pair[0], pair[1].agent_id))
        return [agent for _, agent in neighbors]
