"""
Animation step and facing.

Frames loop per action at the agent's frame_time. While Dying the death
animation plays once, freezes on its last frame, and then drives the
fade-out that hands the agent over to the Dead/respawn countdown.
"""

import math
import numpy as np

from .agent import Agent
from .data_types import Action, AIState, Direction, SpeciesDescriptor
from .constants import DEATH_FADE_RATE, VECTOR_EPSILON


# Angle sector (E=0, counter-clockwise in 45 degree steps) -> facing enum
ANGLE_TO_DIRECTION = (
    Direction.E,    # 0 degrees
    Direction.NE,   # 45
    Direction.N,    # 90
    Direction.NW,   # 135
    Direction.W,    # 180
    Direction.SW,   # 225
    Direction.S,    # 270
    Direction.SE,   # 315
)


def calculate_direction(velocity: np.ndarray, current: Direction = Direction.S) -> Direction:
    """
    Bucket planar velocity into one of 8 compass sectors.

    +x is East and +y is North on the projected sandbox. Each sector spans
    45 degrees centred on its compass heading.

    Args:
        velocity: Velocity vector [vx, vy, ...]
        current: Facing returned unchanged for (near) zero velocity

    Returns:
        Facing direction
    """
    if math.hypot(velocity[0], velocity[1]) <= VECTOR_EPSILON:
        return current

    angle = math.degrees(math.atan2(velocity[1], velocity[0]))
    if angle < 0.0:
        angle += 360.0

    return ANGLE_TO_DIRECTION[int((angle + 22.5) / 45.0) % 8]


def _advance_dying(agent: Agent, delta_time: float, info: SpeciesDescriptor,
                   respawn_delay: float, fade_rate: float):
    last_frame = info.frame_count(Action.DIE) - 1

    if agent.current_frame >= last_frame:
        # Frozen on the last death frame: fade instead of advancing
        agent.current_frame = last_frame
        agent.alpha = max(0.0, agent.alpha - delta_time * fade_rate)

        if agent.alpha <= 0.0:
            agent.ai_state = AIState.DEAD
            agent.is_visible = False
            agent.respawn_timer = respawn_delay
            agent.state_timer = 0.0
        return

    agent.animation_timer += delta_time
    if agent.animation_timer >= agent.frame_time:
        agent.animation_timer -= agent.frame_time
        agent.current_frame = min(agent.current_frame + 1, last_frame)


def update_animation(
    agent: Agent,
    delta_time: float,
    info: SpeciesDescriptor,
    respawn_delay: float,
    fade_rate: float = DEATH_FADE_RATE
):
    """
    Advance one agent's animation by delta_time.

    Args:
        agent: Agent to animate (modified in place)
        delta_time: Elapsed seconds
        info: Species descriptor (frame counts)
        respawn_delay: Countdown started when the fade completes
        fade_rate: Alpha lost per second while fading
    """
    if agent.ai_state is AIState.DEAD:
        return

    if agent.ai_state is AIState.DYING:
        _advance_dying(agent, delta_time, info, respawn_delay, fade_rate)
        return

    agent.animation_timer += delta_time
    if agent.animation_timer >= agent.frame_time:
        agent.animation_timer -= agent.frame_time
        agent.current_frame += 1

        if agent.current_frame >= info.frame_count(agent.action):
            agent.current_frame = 0

    agent.direction = calculate_direction(agent.velocity, agent.direction)
