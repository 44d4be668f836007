"""
Tests for the herbivore and predator state machines.

Scenarios:
- Herbivore flees a hand at run speed, keeps fleeing for the persistence
  window after the hand is gone, then wanders
- Predator hunts visible prey, attacks inside attack range, and the kill
  resolves after the attack cycle
- Both roles abandon everything to flee lava underfoot; herbivores hold
  their heading until they are clear
"""

import sys
import numpy as np
import pytest
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from sandbox_ecosystem.agent import Agent
from sandbox_ecosystem.behavior import (
    BehaviorContext, _flee_from, attack_lands, calculate_herd_center, choose_wander_target,
    update_agent_behavior, HERBIVORE_TRANSITIONS, PREDATOR_TRANSITIONS
)
from sandbox_ecosystem.data_types import Action, AIState, Bounds, SimulationConfig, VALID_ACTIONS
from sandbox_ecosystem.rng import make_rng
from sandbox_ecosystem.simulation import EcosystemSimulation
from sandbox_ecosystem.spatial_queries import AgentIndex
from sandbox_ecosystem.species import Species, get_species_info
from sandbox_ecosystem.terrain import GridTerrainSource, TerrainField, TerrainQuery


DT = 0.1


def make_sim(**config_kwargs) -> EcosystemSimulation:
    return EcosystemSimulation(config=SimulationConfig(**config_kwargs), seed=1234, verbose=False)


def lava_field(height: float = -15.0) -> TerrainField:
    field = TerrainField(update_frequency=1)
    field.refresh(GridTerrainSource.from_arrays(np.full((9, 11), height)))
    return field


def make_context(agents, seed=5) -> BehaviorContext:
    index = AgentIndex(use_ckdtree=True)
    index.build(agents)
    bounds = Bounds()
    return BehaviorContext(
        index=index,
        terrain=TerrainQuery(bounds=bounds),
        bounds=bounds,
        hazard_points=np.empty((0, 3)),
        rng=make_rng(seed),
        hand_flee_radius=0.15,
        flee_persistence=2.0,
        water_avoidance_depth=0.5
    )


def make_agent(agent_id, species, x, y) -> Agent:
    return Agent(agent_id, species, [x, y, 0.0], [0.0, 0.0, 0.0], [x, y, 0.0])


def test_transition_tables_cover_live_states():
    assert set(HERBIVORE_TRANSITIONS) == {AIState.IDLE, AIState.GRAZING, AIState.WANDERING, AIState.FLEEING}
    assert AIState.ATTACKING in PREDATOR_TRANSITIONS
    assert AIState.HUNTING in PREDATOR_TRANSITIONS


# ============================================================================
# Herbivore
# ============================================================================

def test_herbivore_flees_hand_at_run_speed():
    sim = make_sim()
    agent_id = sim.spawn(Species.TRICERATOPS, [0.0, 0.0, 40.0])
    sim.set_hazard_points([[0.05, 0.0, 0.0]])

    sim.update(DT)

    agent = sim.get_agent(agent_id)
    run_speed = get_species_info(Species.TRICERATOPS).run_speed
    assert agent.ai_state is AIState.FLEEING
    assert agent.action is Action.RUN
    assert np.isclose(agent.speed, run_speed)
    assert agent.velocity[0] < 0.0
    assert agent.position[0] < 0.0
    assert agent.target_agent_id is None


def test_herbivore_ignores_hand_outside_radius():
    sim = make_sim()
    agent_id = sim.spawn(Species.TRICERATOPS, [0.0, 0.0, 40.0])
    sim.set_hazard_points([[0.2, 0.0, 0.0]])

    sim.update(DT)
    assert sim.get_agent(agent_id).ai_state is not AIState.FLEEING


def test_hand_flee_radius_setter():
    sim = make_sim()
    agent_id = sim.spawn(Species.TRICERATOPS, [0.0, 0.0, 40.0])
    sim.set_hazard_points([[0.2, 0.0]])
    sim.set_hand_flee_radius(0.3)

    sim.update(DT)
    assert sim.get_agent(agent_id).ai_state is AIState.FLEEING


def test_herbivore_flees_predator_and_records_it():
    sim = make_sim()
    prey_id = sim.spawn(Species.GALLIMIMUS, [0.0, 0.0, 40.0])
    predator_id = sim.spawn(Species.TREX, [0.1, 0.0, 40.0])

    sim.update(DT)

    prey = sim.get_agent(prey_id)
    assert prey.ai_state is AIState.FLEEING
    assert prey.target_agent_id == predator_id
    assert prey.velocity[0] < 0.0


def test_flee_persists_after_threat_leaves():
    sim = make_sim()
    agent_id = sim.spawn(Species.TRICERATOPS, [0.0, 0.0, 40.0])
    agent = sim.get_agent(agent_id)
    run_speed = get_species_info(Species.TRICERATOPS).run_speed

    sim.set_hazard_points([[0.05, 0.0, 0.0]])
    sim.update(DT)
    sim.set_hazard_points([])

    for _ in range(15):
        sim.update(DT)
        assert agent.ai_state is AIState.FLEEING
        assert np.isclose(agent.speed, run_speed)

    for _ in range(10):
        sim.update(DT)

    assert agent.ai_state is not AIState.FLEEING
    assert agent.ai_state in (AIState.WANDERING, AIState.IDLE)
    assert agent.target_agent_id is None


def test_flee_persistence_setter():
    sim = make_sim(flee_persistence=0.5)
    agent_id = sim.spawn(Species.TRICERATOPS, [0.0, 0.0, 40.0])

    sim.set_hazard_points([[0.05, 0.0, 0.0]])
    sim.update(DT)
    sim.set_hazard_points([])
    for _ in range(8):
        sim.update(DT)

    assert sim.get_agent(agent_id).ai_state is not AIState.FLEEING


def test_speed_scale_applies_to_flee():
    sim = make_sim(speed_scale=2.0)
    agent_id = sim.spawn(Species.TRICERATOPS, [0.0, 0.0, 40.0])
    sim.set_hazard_points([[0.05, 0.0, 0.0]])

    sim.update(DT)

    run_speed = get_species_info(Species.TRICERATOPS).run_speed
    assert np.isclose(sim.get_agent(agent_id).speed, 2.0 * run_speed)


def test_idle_dwell_then_graze_or_wander():
    agent = make_agent(0, Species.STEGOSAURUS, 0.0, 0.0)
    ctx = make_context([agent])

    update_agent_behavior(agent, 0.01, ctx)
    assert agent.ai_state is AIState.IDLE
    assert 1.0 <= agent.dwell_time <= 4.0

    update_agent_behavior(agent, 5.0, ctx)
    assert agent.ai_state in (AIState.GRAZING, AIState.WANDERING)
    assert agent.action in VALID_ACTIONS[agent.ai_state]


def test_grazing_ends_in_wandering():
    agent = make_agent(0, Species.STEGOSAURUS, 0.0, 0.0)
    agent.set_state(AIState.GRAZING, Action.IDLE)
    ctx = make_context([agent])

    update_agent_behavior(agent, 0.01, ctx)
    assert agent.ai_state is AIState.GRAZING
    assert agent.speed == 0.0

    update_agent_behavior(agent, 7.0, ctx)
    assert agent.ai_state is AIState.WANDERING
    assert agent.action is Action.WALK


def test_wandering_walks_then_idles_on_arrival():
    agent = make_agent(0, Species.TRICERATOPS, 0.0, 0.0)
    agent.set_state(AIState.WANDERING, Action.WALK)
    agent.target_position = np.array([0.1, 0.0, 0.0])
    ctx = make_context([agent])

    update_agent_behavior(agent, DT, ctx)
    assert np.allclose(agent.velocity, [0.015, 0.0, 0.0])

    agent.position[0] = 0.09
    update_agent_behavior(agent, DT, ctx)
    assert agent.ai_state is AIState.IDLE
    assert agent.speed == 0.0


def test_herd_center():
    agent = make_agent(0, Species.TRICERATOPS, 0.0, 0.0)
    herd = [make_agent(1, Species.TRICERATOPS, 0.1, 0.0),
            make_agent(2, Species.TRICERATOPS, 0.0, 0.1),
            make_agent(3, Species.STEGOSAURUS, -0.05, 0.0),
            make_agent(4, Species.TRICERATOPS, 0.3, 0.3)]
    ctx = make_context([agent] + herd)

    center = calculate_herd_center(agent, ctx)
    assert np.allclose(center[:2], [0.05, 0.05])

    alone = make_agent(9, Species.GALLIMIMUS, 0.2, -0.2)
    assert np.allclose(calculate_herd_center(alone, ctx), alone.position)


def test_wander_target_within_radius_and_bounds():
    agent = make_agent(0, Species.TRICERATOPS, 0.4, 0.3)
    ctx = make_context([agent])

    for _ in range(30):
        target = choose_wander_target(agent, ctx)
        assert np.hypot(target[0] - 0.4, target[1] - 0.3) <= 0.15
        assert ctx.bounds.contains(target[0], target[1])


# ============================================================================
# Predator
# ============================================================================

def test_predator_hunts_visible_prey():
    sim = make_sim()
    predator_id = sim.spawn(Species.TREX, [0.0, 0.0, 40.0])
    prey_id = sim.spawn(Species.TRICERATOPS, [0.1, 0.0, 40.0])

    sim.update(DT)

    predator = sim.get_agent(predator_id)
    assert predator.ai_state is AIState.HUNTING
    assert predator.action is Action.RUN
    assert predator.target_agent_id == prey_id
    assert np.allclose(predator.velocity, [0.030, 0.0, 0.0])


def test_predator_patrols_without_prey():
    sim = make_sim()
    predator_id = sim.spawn(Species.VELOCIRAPTOR, [0.0, 0.0, 40.0])

    sim.update(DT)

    predator = sim.get_agent(predator_id)
    assert predator.ai_state is AIState.WANDERING
    assert predator.action is Action.WALK
    assert predator.target_agent_id is None


def test_predator_kill_and_respawn():
    """T-Rex next to a Stegosaurus: attack cycle completes, prey dies, fades and respawns"""
    sim = make_sim(respawn_delay=0.5)
    predator_id = sim.spawn(Species.TREX, [0.0, 0.0, 40.0])
    prey_id = sim.spawn(Species.STEGOSAURUS, [0.01, 0.0, 40.0])
    predator = sim.get_agent(predator_id)
    prey = sim.get_agent(prey_id)

    sim.update(DT)
    assert predator.ai_state is AIState.ATTACKING
    assert predator.action is Action.ATTACK
    assert predator.speed == 0.0
    assert prey.ai_state is AIState.FLEEING

    for _ in range(14):
        sim.update(DT)
        if not prey.is_alive:
            break

    print(f"Prey died at tick {sim.tick_count}")
    assert not prey.is_alive
    assert prey.ai_state is AIState.DYING
    assert prey.action is Action.DIE
    assert prey.speed == 0.0
    assert sim.events['kills'] == 1
    assert predator.ai_state is not AIState.ATTACKING
    assert predator.target_agent_id != prey_id

    # Death animation (~1.25 s) + fade (2 s) + respawn delay (0.5 s)
    died_at = prey.position.copy()
    respawned = False
    for _ in range(60):
        sim.update(DT)
        if prey.ai_state is AIState.DEAD:
            assert not prey.is_visible
            assert np.allclose(prey.position, died_at)
        if prey.is_alive:
            respawned = True
            break

    assert respawned
    assert prey.agent_id == prey_id
    assert prey.ai_state is AIState.IDLE
    assert prey.action is Action.IDLE
    assert prey.is_visible
    assert prey.alpha == 1.0
    assert sim.events['respawns'] == 1
    assert sim.total_count == 2


def test_attack_misses_when_prey_escapes():
    """Prey out of landing range when the attack resolves: no kill, predator idles"""
    sim = make_sim()
    predator_id = sim.spawn(Species.TREX, [0.0, 0.0, 40.0])
    prey_id = sim.spawn(Species.STEGOSAURUS, [0.01, 0.0, 40.0])
    predator = sim.get_agent(predator_id)
    prey = sim.get_agent(prey_id)

    sim.update(DT)
    assert predator.ai_state is AIState.ATTACKING
    assert predator.target_agent_id == prey_id

    # Well past 2x attack range and out of sight
    prey.position[0] = 0.3

    for _ in range(15):
        sim.update(DT)
        if predator.ai_state is not AIState.ATTACKING:
            break

    assert predator.ai_state is AIState.IDLE
    assert predator.action is Action.IDLE
    assert predator.target_agent_id is None
    assert prey.is_alive
    assert sim.events['kills'] == 0
    assert sim.events['missed_attacks'] == 1


def test_two_predators_one_kill():
    """Two strikes on the same prey in one tick resolve to a single kill"""
    sim = make_sim()
    prey_id = sim.spawn(Species.STEGOSAURUS, [0.0, 0.0, 40.0])
    first = sim.get_agent(sim.spawn(Species.TREX, [-0.005, 0.0, 40.0]))
    second = sim.get_agent(sim.spawn(Species.TREX, [0.005, 0.0, 40.0]))
    prey = sim.get_agent(prey_id)

    sim.update(DT)
    assert first.ai_state is AIState.ATTACKING
    assert second.ai_state is AIState.ATTACKING
    assert first.target_agent_id == prey_id
    assert second.target_agent_id == prey_id

    for _ in range(15):
        sim.update(DT)
        if not prey.is_alive:
            break

    assert not prey.is_alive
    assert prey.ai_state is AIState.DYING
    assert sim.events['kills_this_tick'] == 1
    assert sim.events['kills'] == 1
    assert sim.events['missed_attacks'] == 1
    assert first.ai_state is AIState.IDLE
    assert second.ai_state is AIState.IDLE


def test_attack_lands_checks_range_and_liveness():
    predator = make_agent(0, Species.TREX, 0.0, 0.0)
    prey = make_agent(1, Species.TRICERATOPS, 0.04, 0.0)

    assert attack_lands(predator, prey, 0.05)
    prey.position[0] = 0.06
    assert not attack_lands(predator, prey, 0.05)

    prey.position[0] = 0.01
    prey.is_alive = False
    assert not attack_lands(predator, prey, 0.05)


# ============================================================================
# Lava
# ============================================================================

def test_herbivore_flees_lava_underfoot():
    sim = make_sim()
    sim.set_terrain_field(lava_field())
    agent_id = sim.spawn(Species.PARASAUROLOPHUS, [0.1, 0.1, 0.0])

    sim.update(DT)

    agent = sim.get_agent(agent_id)
    assert agent.ai_state is AIState.FLEEING
    assert agent.action is Action.RUN
    assert agent.speed > 0.0


def test_threat_underfoot_keeps_heading():
    agent = make_agent(0, Species.GALLIMIMUS, 0.0, 0.0)
    agent.velocity = np.array([0.0, 0.02, 0.0])
    ctx = make_context([agent])
    run_speed = get_species_info(Species.GALLIMIMUS).run_speed

    _flee_from(agent, agent.position, run_speed, ctx)

    assert agent.ai_state is AIState.FLEEING
    assert np.isclose(agent.speed, run_speed)
    assert agent.velocity[1] > 0.9 * run_speed


def test_threat_underfoot_standing_still_picks_heading():
    agent = make_agent(0, Species.GALLIMIMUS, 0.0, 0.0)
    ctx = make_context([agent])
    run_speed = get_species_info(Species.GALLIMIMUS).run_speed

    _flee_from(agent, agent.position, run_speed, ctx)

    assert np.isclose(agent.speed, run_speed)


def test_herbivore_runs_out_of_lava_pool():
    """Lava disk of radius 0.08 around the centre; escape takes a couple of seconds"""
    xs = np.linspace(-0.5, 0.5, 101)
    ys = np.linspace(-0.4, 0.4, 81)
    xx, yy = np.meshgrid(xs, ys)
    terrain = np.where(np.hypot(xx, yy) < 0.08, -15.0, 40.0)
    field = TerrainField(update_frequency=1)
    field.refresh(GridTerrainSource.from_arrays(terrain))

    sim = make_sim()
    sim.set_terrain_field(field)
    agent = sim.get_agent(sim.spawn(Species.GALLIMIMUS, [0.0, 0.0, 0.0]))

    escaped_at = None
    for tick in range(300):
        sim.update(1.0 / 60.0)
        if not field.query(agent.position[0], agent.position[1]).is_lava:
            escaped_at = tick
            break

    print(f"Escaped lava after {escaped_at} ticks")
    assert escaped_at is not None


@pytest.mark.parametrize("species", [Species.TREX, Species.RAPTOR_RED])
def test_predator_flees_lava_toward_center(species):
    sim = make_sim()
    sim.set_terrain_field(lava_field())
    predator_id = sim.spawn(species, [0.2, 0.1, 0.0])
    sim.spawn(Species.TRICERATOPS, [0.21, 0.1, 0.0])

    sim.update(DT)

    predator = sim.get_agent(predator_id)
    info = get_species_info(species)
    expected = -np.array([0.2, 0.1]) / np.hypot(0.2, 0.1) * info.run_speed
    assert predator.ai_state is AIState.FLEEING
    assert predator.action is Action.RUN
    assert predator.target_agent_id is None
    assert np.allclose(predator.velocity[:2], expected)
    assert sim.events['kills'] == 0


def test_lava_threshold_setter_reaches_field():
    sim = make_sim()
    sim.set_terrain_field(lava_field(height=-5.0))
    agent_id = sim.spawn(Species.TREX, [0.2, 0.1, 0.0])

    sim.update(DT)
    assert sim.get_agent(agent_id).ai_state is not AIState.FLEEING

    sim.set_lava_threshold(0.0)
    sim.update(DT)
    assert sim.get_agent(agent_id).ai_state is AIState.FLEEING


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
