"""
Data types shared across the ecosystem simulation.

Enumerations for roles, actions, facing and AI states, plus the small
value records exchanged between the terrain field, the species catalog
and the simulator. SimulationConfig is populated by loader.py from YAML.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple
from enum import Enum, IntEnum

import numpy as np

from .constants import (
    DEFAULT_BOUNDS,
    LAVA_THRESHOLD_DEFAULT,
    WATER_DEPTH_THRESHOLD_DEFAULT,
    WATER_AVOIDANCE_DEPTH_DEFAULT,
    HAND_FLEE_RADIUS_DEFAULT,
    FLEE_PERSISTENCE_DEFAULT,
    RESPAWN_DELAY_DEFAULT,
    ANIMATION_SPEED_DEFAULT,
    SPEED_SCALE_DEFAULT,
    TERRAIN_UPDATE_FREQUENCY_DEFAULT,
    TERRAIN_BACKEND_GRID,
)


# ============================================================================
# Enumerations
# ============================================================================

class Role(Enum):
    """Behavioral category selecting the AI state machine"""
    HERBIVORE = "herbivore"
    PREDATOR = "predator"


class Action(IntEnum):
    """Animation category (indexes frames_per_action and the sprite table)"""
    IDLE = 0
    WALK = 1
    RUN = 2
    ATTACK = 3
    DIE = 4
    TAKEDAMAGE = 5


class Direction(IntEnum):
    """Facing sector; value is also the sprite sheet row"""
    N = 0
    NE = 1
    E = 2
    SE = 3
    S = 4
    SW = 5
    W = 6
    NW = 7


class AIState(Enum):
    IDLE = "idle"
    WANDERING = "wandering"
    GRAZING = "grazing"
    FLEEING = "fleeing"
    HUNTING = "hunting"
    ATTACKING = "attacking"
    DYING = "dying"
    DEAD = "dead"


class TerrainType(Enum):
    NORMAL = "normal"
    WATER = "water"
    LAVA = "lava"


# Legal animation for each AI state
VALID_ACTIONS: Dict[AIState, Tuple[Action, ...]] = {
    AIState.IDLE: (Action.IDLE,),
    AIState.GRAZING: (Action.IDLE,),
    AIState.WANDERING: (Action.WALK,),
    AIState.FLEEING: (Action.RUN,),
    AIState.HUNTING: (Action.RUN,),
    AIState.ATTACKING: (Action.ATTACK,),
    AIState.DYING: (Action.DIE,),
    AIState.DEAD: (Action.DIE,),
}


# ============================================================================
# Species / Terrain Records
# ============================================================================

@dataclass(frozen=True)
class SpeciesDescriptor:
    """Immutable per-species behavioral parameters"""
    name: str                 # Display name
    sprite_folder: str        # Asset-path key
    role: Role
    walk_speed: float         # world units/sec
    run_speed: float
    sight_range: float        # Distance to detect threats/prey
    attack_range: float       # 0.0 for herbivores
    frames_per_action: Tuple[int, ...]  # Indexed by Action

    def frame_count(self, action: Action) -> int:
        return self.frames_per_action[int(action)]


@dataclass
class Bounds:
    """Playable rectangle plus elevation range"""
    min_x: float = DEFAULT_BOUNDS['min_x']
    max_x: float = DEFAULT_BOUNDS['max_x']
    min_y: float = DEFAULT_BOUNDS['min_y']
    max_y: float = DEFAULT_BOUNDS['max_y']
    min_z: float = DEFAULT_BOUNDS['min_z']
    max_z: float = DEFAULT_BOUNDS['max_z']

    @property
    def center(self) -> Tuple[float, float]:
        return (0.5 * (self.min_x + self.max_x), 0.5 * (self.min_y + self.max_y))

    @property
    def mid_elevation(self) -> float:
        return 0.5 * (self.min_z + self.max_z)

    def contains(self, x: float, y: float) -> bool:
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y


@dataclass
class TerrainSample:
    """Result of a terrain query at one (x, y) point"""
    terrain_height: float
    water_surface_height: float
    water_depth: float
    terrain_type: TerrainType
    is_valid: bool

    @property
    def elevation(self) -> float:
        return self.terrain_height

    @property
    def is_lava(self) -> bool:
        return self.terrain_type is TerrainType.LAVA


@dataclass
class TerrainGrids:
    """
    One snapshot of the external terrain source.

    Attributes:
        terrain: (H, W) terrain heights, row-major (row = y, column = x)
        water: (H, W) water surface elevations, same shape as terrain
        domain_min: [x, y, z] world-space minimum the grids cover
        domain_max: [x, y, z] world-space maximum the grids cover
    """
    terrain: np.ndarray
    water: np.ndarray
    domain_min: Tuple[float, float, float]
    domain_max: Tuple[float, float, float]

    def __post_init__(self):
        self.terrain = np.asarray(self.terrain, dtype=np.float64)
        self.water = np.asarray(self.water, dtype=np.float64)
        if self.terrain.ndim != 2 or self.terrain.shape != self.water.shape:
            raise ValueError(
                f"terrain and water grids must be equally-sized 2D arrays, "
                f"got {self.terrain.shape} and {self.water.shape}"
            )


# ============================================================================
# Simulation Records
# ============================================================================

@dataclass
class AttackResult:
    """Kill intent produced by a predator during behavior evaluation"""
    predator_id: int
    prey_id: int
    landing_range: float  # prey must be closer than this at resolution


@dataclass
class SimulationConfig:
    """Runtime-tunable simulation parameters"""
    bounds: Bounds = field(default_factory=Bounds)
    lava_threshold: float = LAVA_THRESHOLD_DEFAULT
    water_depth_threshold: float = WATER_DEPTH_THRESHOLD_DEFAULT
    water_avoidance_depth: float = WATER_AVOIDANCE_DEPTH_DEFAULT
    hand_flee_radius: float = HAND_FLEE_RADIUS_DEFAULT
    flee_persistence: float = FLEE_PERSISTENCE_DEFAULT
    respawn_delay: float = RESPAWN_DELAY_DEFAULT
    animation_speed: float = ANIMATION_SPEED_DEFAULT
    speed_scale: float = SPEED_SCALE_DEFAULT
    terrain_update_frequency: int = TERRAIN_UPDATE_FREQUENCY_DEFAULT
    terrain_backend: str = TERRAIN_BACKEND_GRID
    seed: Optional[int] = None
