"""
Behavior evaluation engine for agent AI.

Each role runs a finite-state machine stored as an explicit transition
table (AI state -> handler). Handlers read the tick-start world through
a BehaviorContext and mutate only the agent being evaluated. Predator
kills are returned as AttackResult intents and applied by the simulator
after every agent has been evaluated.

Herbivore: Idle -> Grazing | Wandering -> Idle, with Fleeing forced by
any threat (predator, hazard point, lava underfoot).
Predator: patrol (Wandering) -> Hunting -> Attacking -> Idle, with an
unconditional flee-from-lava override.
"""

import numpy as np
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from .agent import Agent
from .data_types import Action, AIState, AttackResult, Bounds, Role, SpeciesDescriptor, TerrainType
from .spatial import direction_to, distance_2d, normalize_2d
from .spatial_queries import AgentIndex
from .species import get_species_info
from .spawning import is_position_safe
from .terrain import TerrainQuery
from .avoidance import apply_avoidance
from .constants import (
    LAVA_THREAT_DISTANCE,
    FLEE_JITTER,
    IDLE_DWELL_MIN,
    IDLE_DWELL_SPAN,
    GRAZE_CHANCE,
    GRAZE_DWELL_MIN,
    GRAZE_DWELL_SPAN,
    ATTACK_DURATION,
    ATTACK_LANDING_FACTOR,
    PATROL_TIMEOUT,
    ARRIVAL_EPSILON,
    WANDER_RADIUS,
    WANDER_ATTEMPTS,
    HERD_RADIUS,
    HERD_BLEND,
    VECTOR_EPSILON,
)


@dataclass
class BehaviorContext:
    """
    Read-only view of the world for one tick of behavior evaluation.

    Built once per tick by the simulator; shared by every agent.
    """
    index: AgentIndex
    terrain: TerrainQuery
    bounds: Bounds
    hazard_points: np.ndarray          # (M, 3) hand positions
    rng: np.random.Generator
    hand_flee_radius: float
    flee_persistence: float
    water_avoidance_depth: float
    speed_scale: float = 1.0


# ============================================================================
# Perception
# ============================================================================

def find_nearest_threat(
    agent: Agent,
    info: SpeciesDescriptor,
    ctx: BehaviorContext
) -> Optional[Tuple[np.ndarray, float, Optional[int]]]:
    """
    Find the threat a herbivore should flee from.

    Candidates: nearest living predator within sight range, nearest
    hazard point within the flee radius (nearest wins). Lava underfoot
    overrides both as a threat at the agent's own position.

    Returns:
        (threat position, distance, threatening agent id or None), or None
    """
    threat_pos = None
    threat_dist = float('inf')
    threat_id = None

    predator, dist = ctx.index.find_nearest_by_role(agent, Role.PREDATOR, info.sight_range)
    if predator is not None:
        threat_pos, threat_dist, threat_id = predator.position, dist, predator.agent_id

    if len(ctx.hazard_points) > 0:
        offsets = ctx.hazard_points[:, :2] - agent.position[:2]
        distances = np.hypot(offsets[:, 0], offsets[:, 1])
        nearest = int(np.argmin(distances))
        dist = float(distances[nearest])
        if dist < ctx.hand_flee_radius and dist < threat_dist:
            threat_pos, threat_dist, threat_id = ctx.hazard_points[nearest], dist, None

    if ctx.terrain.sample(agent.position[0], agent.position[1]).terrain_type is TerrainType.LAVA:
        threat_pos, threat_dist, threat_id = agent.position, LAVA_THREAT_DISTANCE, None

    if threat_pos is None:
        return None
    return np.array(threat_pos, dtype=np.float64), threat_dist, threat_id


def find_nearest_prey(agent: Agent, info: SpeciesDescriptor, ctx: BehaviorContext) -> Tuple[Optional[Agent], float]:
    """Nearest living herbivore within the predator's sight range"""
    return ctx.index.find_nearest_by_role(agent, Role.HERBIVORE, info.sight_range)


def calculate_herd_center(agent: Agent, ctx: BehaviorContext) -> np.ndarray:
    """
    Centroid of same-species living agents within HERD_RADIUS.

    Returns:
        [x, y, z] centroid, or the agent's own position when alone
    """
    herd = ctx.index.neighbors_of_species(agent, agent.species, HERD_RADIUS)
    if not herd:
        return agent.position.copy()
    return np.mean([member.position for member in herd], axis=0)


def choose_wander_target(agent: Agent, ctx: BehaviorContext) -> np.ndarray:
    """
    Pick a safe random point within WANDER_RADIUS of the agent.

    Falls back to the bounds centre after WANDER_ATTEMPTS unsafe draws.
    """
    for _ in range(WANDER_ATTEMPTS):
        angle = ctx.rng.random() * 2.0 * np.pi
        dist = ctx.rng.random() * WANDER_RADIUS

        x = agent.position[0] + np.cos(angle) * dist
        y = agent.position[1] + np.sin(angle) * dist

        if is_position_safe(x, y, ctx.bounds, ctx.terrain, ctx.water_avoidance_depth):
            return np.array([x, y, agent.position[2]], dtype=np.float64)

    center_x, center_y = ctx.bounds.center
    return np.array([center_x, center_y, agent.position[2]], dtype=np.float64)


# ============================================================================
# Shared Actions
# ============================================================================

def _move_toward_target(agent: Agent, speed: float) -> bool:
    """
    Set velocity toward target_position.

    Returns:
        True if the target is already within ARRIVAL_EPSILON (velocity zeroed)
    """
    direction, dist = direction_to(agent.position, agent.target_position)
    if dist < ARRIVAL_EPSILON:
        agent.stop()
        return True
    agent.velocity = direction * speed
    return False


def _start_wandering(agent: Agent, ctx: BehaviorContext, herd_bias: bool = False):
    agent.set_state(AIState.WANDERING, Action.WALK)
    agent.target_position = choose_wander_target(agent, ctx)

    if herd_bias:
        herd_center = calculate_herd_center(agent, ctx)
        agent.target_position[:2] = (agent.target_position[:2] * (1.0 - HERD_BLEND)
                                     + herd_center[:2] * HERD_BLEND)


def _flee_from(agent: Agent, threat_pos: np.ndarray, run_speed: float, ctx: BehaviorContext):
    heading, speed = normalize_2d(agent.velocity)
    agent.set_state(AIState.FLEEING, Action.RUN)

    flee_dir, length = normalize_2d(agent.position - threat_pos)
    if length <= VECTOR_EPSILON:
        # Threat underfoot: no "away", hold the current heading
        if speed > VECTOR_EPSILON:
            flee_dir = heading
        else:
            angle = ctx.rng.random() * 2.0 * np.pi
            flee_dir = np.array([np.cos(angle), np.sin(angle), 0.0], dtype=np.float64)

    flee_dir[0] += (ctx.rng.random() - 0.5) * FLEE_JITTER
    flee_dir[1] += (ctx.rng.random() - 0.5) * FLEE_JITTER
    flee_dir, _ = normalize_2d(flee_dir)

    agent.velocity = flee_dir * run_speed


# ============================================================================
# Herbivore State Machine
# ============================================================================

def _herbivore_idle(agent: Agent, info: SpeciesDescriptor, ctx: BehaviorContext):
    agent.stop()
    if agent.dwell_time is None:
        agent.dwell_time = IDLE_DWELL_MIN + ctx.rng.random() * IDLE_DWELL_SPAN

    if agent.state_timer <= agent.dwell_time:
        return

    if ctx.rng.random() < GRAZE_CHANCE:
        agent.set_state(AIState.GRAZING, Action.IDLE)
        agent.stop()
    else:
        _start_wandering(agent, ctx, herd_bias=True)


def _herbivore_grazing(agent: Agent, info: SpeciesDescriptor, ctx: BehaviorContext):
    agent.stop()
    if agent.dwell_time is None:
        agent.dwell_time = GRAZE_DWELL_MIN + ctx.rng.random() * GRAZE_DWELL_SPAN

    if agent.state_timer > agent.dwell_time:
        _start_wandering(agent, ctx)


def _herbivore_wandering(agent: Agent, info: SpeciesDescriptor, ctx: BehaviorContext):
    if _move_toward_target(agent, info.walk_speed * ctx.speed_scale):
        agent.set_state(AIState.IDLE, Action.IDLE)


def _herbivore_fleeing(agent: Agent, info: SpeciesDescriptor, ctx: BehaviorContext):
    # Keep running on the last flee heading until the threat has been gone long enough
    if agent.state_timer > ctx.flee_persistence:
        agent.target_agent_id = None
        _start_wandering(agent, ctx)
        return

    heading, length = normalize_2d(agent.velocity)
    if length > VECTOR_EPSILON:
        agent.velocity = heading * (info.run_speed * ctx.speed_scale)


HERBIVORE_TRANSITIONS: Dict[AIState, Callable[[Agent, SpeciesDescriptor, BehaviorContext], None]] = {
    AIState.IDLE: _herbivore_idle,
    AIState.GRAZING: _herbivore_grazing,
    AIState.WANDERING: _herbivore_wandering,
    AIState.FLEEING: _herbivore_fleeing,
}


def update_herbivore(agent: Agent, info: SpeciesDescriptor, ctx: BehaviorContext):
    """Threat scan first; otherwise run the current state's handler"""
    threat = find_nearest_threat(agent, info, ctx)

    if threat is not None:
        threat_pos, _, threat_id = threat
        _flee_from(agent, threat_pos, info.run_speed * ctx.speed_scale, ctx)
        agent.target_agent_id = threat_id
    else:
        HERBIVORE_TRANSITIONS.get(agent.ai_state, _herbivore_idle)(agent, info, ctx)

    apply_avoidance(agent, info.walk_speed * ctx.speed_scale, ctx.bounds, ctx.terrain,
                    ctx.water_avoidance_depth)


# ============================================================================
# Predator State Machine
# ============================================================================

def _predator_scan(agent: Agent, info: SpeciesDescriptor, ctx: BehaviorContext) -> Optional[AttackResult]:
    """Hunt the nearest visible herbivore, or patrol"""
    prey, dist = find_nearest_prey(agent, info, ctx)

    if prey is not None:
        agent.target_agent_id = prey.agent_id

        if dist < info.attack_range:
            agent.set_state(AIState.ATTACKING, Action.ATTACK)
            agent.stop()
        else:
            if agent.ai_state is not AIState.HUNTING:
                agent.set_state(AIState.HUNTING, Action.RUN)
            direction, _ = direction_to(agent.position, prey.position)
            agent.velocity = direction * (info.run_speed * ctx.speed_scale)
        return None

    agent.target_agent_id = None
    if agent.ai_state is not AIState.WANDERING or agent.state_timer > PATROL_TIMEOUT:
        _start_wandering(agent, ctx)

    _move_toward_target(agent, info.walk_speed * ctx.speed_scale)
    return None


def _predator_attacking(agent: Agent, info: SpeciesDescriptor, ctx: BehaviorContext) -> Optional[AttackResult]:
    """Hold still until the attack animation finishes, then strike"""
    agent.stop()
    if agent.state_timer <= ATTACK_DURATION:
        return None

    result = None
    if agent.target_agent_id is not None:
        result = AttackResult(
            predator_id=agent.agent_id,
            prey_id=agent.target_agent_id,
            landing_range=info.attack_range * ATTACK_LANDING_FACTOR
        )

    agent.set_state(AIState.IDLE, Action.IDLE)
    agent.target_agent_id = None
    return result


PREDATOR_TRANSITIONS: Dict[AIState, Callable[[Agent, SpeciesDescriptor, BehaviorContext], Optional[AttackResult]]] = {
    AIState.IDLE: _predator_scan,
    AIState.WANDERING: _predator_scan,
    AIState.HUNTING: _predator_scan,
    AIState.FLEEING: _predator_scan,
    AIState.ATTACKING: _predator_attacking,
}


def update_predator(agent: Agent, info: SpeciesDescriptor, ctx: BehaviorContext) -> Optional[AttackResult]:
    """Lava override first (skips everything else this tick), then the state handler"""
    if ctx.terrain.sample(agent.position[0], agent.position[1]).terrain_type is TerrainType.LAVA:
        if agent.ai_state is not AIState.FLEEING:
            agent.set_state(AIState.FLEEING, Action.RUN)
        agent.target_agent_id = None
        center_x, center_y = ctx.bounds.center
        direction, _ = direction_to(agent.position, (center_x, center_y, agent.position[2]))
        agent.velocity = direction * (info.run_speed * ctx.speed_scale)
        return None

    result = PREDATOR_TRANSITIONS.get(agent.ai_state, _predator_scan)(agent, info, ctx)

    apply_avoidance(agent, info.walk_speed * ctx.speed_scale, ctx.bounds, ctx.terrain,
                    ctx.water_avoidance_depth)
    return result


# ============================================================================
# Entry Point
# ============================================================================

def update_agent_behavior(agent: Agent, delta_time: float, ctx: BehaviorContext) -> Optional[AttackResult]:
    """
    Evaluate one living agent's AI for this tick.

    Updates agent.ai_state, agent.action, agent.velocity,
    agent.target_position, agent.target_agent_id and agent.state_timer.

    Args:
        agent: Living agent to update
        delta_time: Elapsed seconds
        ctx: Tick-start world view

    Returns:
        AttackResult if a predator's attack resolved this tick, else None
    """
    agent.state_timer += delta_time
    info = get_species_info(agent.species)

    if info.role is Role.HERBIVORE:
        update_herbivore(agent, info, ctx)
        return None
    return update_predator(agent, info, ctx)


def attack_lands(predator: Agent, prey: Agent, landing_range: float) -> bool:
    """Kill condition checked at resolution time"""
    return prey.is_alive and distance_2d(predator.position, prey.position) < landing_range
