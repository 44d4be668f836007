"""
Agent runtime representation.

Agents are spawned from the species catalog and live in the simulator's
population arena for the whole session. Dead agents are revived in place
with the same agent_id, never removed.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional

from .data_types import Action, AIState, Direction
from .species import Species


@dataclass
class Agent:
    """
    Runtime creature in the simulation.

    Attributes:
        agent_id: Unique, monotonically increasing identifier
        species: Species tag (descriptor looked up from the catalog)
        position: 3D position [x, y, elevation]
        velocity: 3D velocity [vx, vy, vz] in world units/s
        target_position: Current movement target [x, y, elevation]
        ai_state: Current behavior state
        action: Current animation category (always legal for ai_state)
        direction: Facing sector (sprite sheet row)
        current_frame: Animation frame index
        animation_timer: Time accumulated toward the next frame
        frame_time: Seconds per animation frame
        state_timer: Seconds since entering ai_state
        dwell_time: Randomized Idle/Grazing duration, drawn on first use
        target_agent_id: Agent being hunted/attacked (id only)
        respawn_timer: Countdown while Dead
        is_alive: False from the killing blow until respawn
        is_visible: False once fully faded
        alpha: Opacity in [0, 1]
    """
    agent_id: int
    species: Species
    position: np.ndarray
    velocity: np.ndarray
    target_position: np.ndarray
    ai_state: AIState = AIState.IDLE
    action: Action = Action.IDLE
    direction: Direction = Direction.S
    current_frame: int = 0
    animation_timer: float = 0.0
    frame_time: float = 1.0 / 12.0
    state_timer: float = 0.0
    dwell_time: Optional[float] = None
    target_agent_id: Optional[int] = None
    respawn_timer: float = 0.0
    is_alive: bool = True
    is_visible: bool = True
    alpha: float = 1.0

    def __post_init__(self):
        """Ensure vectors are float64 arrays"""
        self.position = np.array(self.position, dtype=np.float64)
        self.velocity = np.array(self.velocity, dtype=np.float64)
        self.target_position = np.array(self.target_position, dtype=np.float64)

    def set_state(self, state: AIState, action: Action):
        """Enter a new AI state and reset the state timer"""
        self.ai_state = state
        self.action = action
        self.state_timer = 0.0
        self.dwell_time = None

    def stop(self):
        self.velocity[:] = 0.0

    @property
    def speed(self) -> float:
        return float(np.hypot(self.velocity[0], self.velocity[1]))

    def to_dict(self) -> dict:
        """
        Serialize agent to JSON-compatible dict.

        Returns:
            Dict with all fields the renderer needs plus AI state
        """
        return {
            'agent_id': self.agent_id,
            'species': self.species.value,
            'position': self.position.tolist(),
            'velocity': self.velocity.tolist(),
            'ai_state': self.ai_state.value,
            'action': self.action.name.lower(),
            'direction': self.direction.name,
            'current_frame': self.current_frame,
            'alpha': self.alpha,
            'is_alive': self.is_alive,
            'is_visible': self.is_visible,
        }
