"""
Ecosystem simulation kernel.

Main simulation class that owns the agent population, runs the per-tick
AI / animation / movement pipeline, and handles spawning, death and
respawn. Terrain comes from a TerrainField (cached grids) and/or a
direct height function; hazard points (detected hands) are replaced
wholesale by the driver before each tick.
"""

import numpy as np
import os
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from .agent import Agent
from .data_types import Action, AIState, AttackResult, Bounds, Direction, SimulationConfig, VALID_ACTIONS
from .species import Species, get_species_info, is_herbivore, is_predator
from .terrain import HeightFunctionTerrain, TerrainField, TerrainQuery
from .spatial import clamp_to_bounds
from .spatial_queries import AgentIndex
from .spawning import find_valid_spawn_position, initial_population_plan
from .behavior import BehaviorContext, attack_lands, update_agent_behavior
from .animation import update_animation
from .loader import load_config
from .rng import make_rng, time_seed
from .constants import (
    ELEVATION_SMOOTHING,
    SPAWN_STATE_TIMER_STAGGER,
    PHASE_TIME_WINDOW,
    TICK_TIME_WINDOW,
    USE_CKDTREE,
)


class EcosystemSimulation:
    """
    Main simulation class for the sandbox ecosystem.

    Single-threaded: update() is called once per frame and is not
    reentrant. Agents reference each other by agent_id only; the
    population is one list plus an id -> row map.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        terrain_field: Optional[TerrainField] = None,
        height_function: Optional[Callable[[float, float], float]] = None,
        seed: Optional[int] = None,
        use_ckdtree: Optional[bool] = None,
        verbose: bool = True
    ):
        """
        Initialize an empty simulation.

        Args:
            config: Runtime parameters (defaults to SimulationConfig())
            terrain_field: Cached grid backend (driver calls refresh on it)
            height_function: Direct height_at(x, y) fallback backend
            seed: RNG seed; overrides config.seed (None in both = time-based)
            use_ckdtree: Override USE_CKDTREE for the agent index
            verbose: Print initialization summary
        """
        self.config: SimulationConfig = config if config is not None else SimulationConfig()
        self.verbose = verbose
        self.population_policy: Optional[Dict[str, int]] = None

        if seed is None:
            seed = self.config.seed
        if seed is None:
            seed = time_seed()
        self.seed: int = seed
        self.rng: np.random.Generator = make_rng(seed)

        # Population arena
        self._agents: List[Agent] = []
        self._row_of_id: Dict[int, int] = {}
        self._next_agent_id: int = 0

        # Externally supplied hazard points (hands), (M, 3)
        self._hazard_points: np.ndarray = np.empty((0, 3), dtype=np.float64)

        # Terrain backends behind one query interface
        self.terrain = TerrainQuery(backend=self.config.terrain_backend, bounds=self.config.bounds)
        if terrain_field is not None:
            self.set_terrain_field(terrain_field)
        if height_function is not None:
            self.set_height_function(height_function)

        self.index = AgentIndex(use_ckdtree=use_ckdtree if use_ckdtree is not None else USE_CKDTREE)

        self.tick_count: int = 0
        self.sim_time: float = 0.0

        # Performance metrics
        self._tick_times: List[float] = []
        self._tick_time_sum: float = 0.0
        self._tick_time_window: int = TICK_TIME_WINDOW

        # Phase timing breakdown
        self._build_times: List[float] = []
        self._behavior_times: List[float] = []
        self._attack_times: List[float] = []
        self._movement_times: List[float] = []
        self._phase_time_window: int = PHASE_TIME_WINDOW

        # Lifecycle telemetry
        self.events: Dict[str, int] = {
            'kills': 0,
            'kills_this_tick': 0,
            'respawns': 0,
            'missed_attacks': 0,
        }

        if verbose:
            print(f"[OK] Ecosystem initialized: bounds x[{self.config.bounds.min_x}, {self.config.bounds.max_x}] "
                  f"y[{self.config.bounds.min_y}, {self.config.bounds.max_y}], seed={self.seed}")

    @classmethod
    def from_config(
        cls,
        config: Union[SimulationConfig, str, Path],
        terrain_field: Optional[TerrainField] = None,
        height_function: Optional[Callable[[float, float], float]] = None,
        **kwargs
    ) -> 'EcosystemSimulation':
        """
        Build a simulation from a SimulationConfig or a YAML config path.

        A terrain field is created from the config when none is given.
        """
        population = None
        if not isinstance(config, SimulationConfig):
            config, population = load_config(Path(config))

        if terrain_field is None:
            terrain_field = TerrainField(
                lava_threshold=config.lava_threshold,
                water_depth_threshold=config.water_depth_threshold,
                update_frequency=config.terrain_update_frequency,
                elevation_range=(config.bounds.min_z, config.bounds.max_z)
            )
        sim = cls(config=config, terrain_field=terrain_field, height_function=height_function, **kwargs)
        sim.population_policy = population
        return sim

    # ========================================================================
    # Spawning
    # ========================================================================

    def spawn(self, species: Species, position: Sequence[float]) -> int:
        """
        Spawn an agent at a position.

        Args:
            species: Species tag
            position: [x, y, elevation] (elevation defaults to the terrain sample)

        Returns:
            New agent_id (strictly increasing, never reused)
        """
        position = np.array(position, dtype=np.float64)
        if position.shape[0] == 2:
            elevation = self.terrain.sample(position[0], position[1]).elevation
            position = np.append(position, elevation)

        agent = Agent(
            agent_id=self._next_agent_id,
            species=species,
            position=position,
            velocity=np.zeros(3, dtype=np.float64),
            target_position=position.copy(),
            ai_state=AIState.IDLE,
            action=Action.IDLE,
            direction=Direction(int(self.rng.integers(8))),
            current_frame=0,
            animation_timer=0.0,
            frame_time=1.0 / self.config.animation_speed,
            state_timer=self.rng.random() * SPAWN_STATE_TIMER_STAGGER,
        )
        self._next_agent_id += 1

        self._row_of_id[agent.agent_id] = len(self._agents)
        self._agents.append(agent)
        return agent.agent_id

    def spawn_random(self, species: Species) -> int:
        """Spawn at a safe random position (bounds centre if none is found)"""
        return self.spawn(species, self._find_spawn_position())

    def spawn_initial_population(self, policy: Optional[Dict[str, int]] = None) -> List[int]:
        """
        Seed the starting herbivore/predator mix.

        Args:
            policy: Species name -> count (defaults to the loaded config's
                population, then INITIAL_POPULATION)

        Returns:
            Spawned agent ids in spawn order
        """
        if policy is None:
            policy = self.population_policy
        ids = [self.spawn_random(species) for species in initial_population_plan(policy)]
        if self.verbose:
            print(f"[OK] Spawned initial population: {len(ids)} agents "
                  f"({self.herbivore_count} herbivores, {self.predator_count} predators)")
        return ids

    def _find_spawn_position(self) -> np.ndarray:
        return find_valid_spawn_position(
            self.rng, self.config.bounds, self.terrain, self.config.water_avoidance_depth
        )

    # ========================================================================
    # Tick
    # ========================================================================

    def _behavior_context(self) -> BehaviorContext:
        return BehaviorContext(
            index=self.index,
            terrain=self.terrain,
            bounds=self.config.bounds,
            hazard_points=self._hazard_points,
            rng=self.rng,
            hand_flee_radius=self.config.hand_flee_radius,
            flee_persistence=self.config.flee_persistence,
            water_avoidance_depth=self.config.water_avoidance_depth,
            speed_scale=self.config.speed_scale
        )

    def update(self, delta_time: float):
        """
        Advance the simulation by delta_time seconds.

        Phase A: Behavior (agents read tick-start positions)
        ----------------------------------------------------
        The agent index is built once from tick-start positions. Living
        agents run their AI and avoidance, which sets velocities and
        states but never moves anyone. Dead agents count down and respawn.
        Predator strikes are collected as AttackResult intents.

        Phase A.5: Attack resolution
        ----------------------------
        Intents are applied by id lookup: the prey dies only if it is
        still alive and within the landing range of its attacker.

        Phase B: Animation and movement
        -------------------------------
        Frames advance, Dying agents fade, living agents integrate their
        velocity, clamp into bounds and follow the terrain.

        Args:
            delta_time: Elapsed seconds since the previous update (>= 0)
        """
        start_time = time.perf_counter()
        delta_time = max(0.0, float(delta_time))

        # ============================================================
        # PHASE A: BEHAVIOR EVALUATION
        # ============================================================
        build_start = time.perf_counter()
        self.index.build(self._agents)
        self._record_phase_time(self._build_times, time.perf_counter() - build_start)

        behavior_start = time.perf_counter()
        ctx = self._behavior_context()
        attack_results: List[AttackResult] = []

        for agent in self._agents:
            if agent.is_alive:
                result = update_agent_behavior(agent, delta_time, ctx)
                if result is not None:
                    attack_results.append(result)
            elif agent.ai_state is AIState.DEAD:
                self._update_dead(agent, delta_time)

        self._record_phase_time(self._behavior_times, time.perf_counter() - behavior_start)

        # ============================================================
        # PHASE A.5: ATTACK RESOLUTION (deferred cross-agent mutation)
        # ============================================================
        attack_start = time.perf_counter()
        self.events['kills_this_tick'] = self._resolve_attacks(attack_results)
        self._record_phase_time(self._attack_times, time.perf_counter() - attack_start)

        # ============================================================
        # PHASE B: ANIMATION + MOVEMENT
        # ============================================================
        movement_start = time.perf_counter()
        for agent in self._agents:
            info = get_species_info(agent.species)
            update_animation(agent, delta_time, info, self.config.respawn_delay)
            self._update_movement(agent, delta_time)
        self._record_phase_time(self._movement_times, time.perf_counter() - movement_start)

        self.tick_count += 1
        self.sim_time += delta_time

        elapsed = time.perf_counter() - start_time
        self._record_tick_time(elapsed)

        # Debug invariant check (zero perf impact when env var not set)
        if os.getenv('SIM_DEBUG_INVARIANTS') == '1':
            self.check_invariants()

    def _update_dead(self, agent: Agent, delta_time: float):
        """Respawn countdown; revives the agent in place when it expires"""
        agent.respawn_timer -= delta_time
        if agent.respawn_timer > 0.0:
            return

        position = self._find_spawn_position()
        agent.position = position
        agent.target_position = position.copy()
        agent.velocity = np.zeros(3, dtype=np.float64)
        agent.set_state(AIState.IDLE, Action.IDLE)
        agent.current_frame = 0
        agent.animation_timer = 0.0
        agent.target_agent_id = None
        agent.respawn_timer = 0.0
        agent.is_alive = True
        agent.is_visible = True
        agent.alpha = 1.0

        self.events['respawns'] += 1

    def _resolve_attacks(self, attack_results: List[AttackResult]) -> int:
        """
        Apply predator strikes collected during Phase A.

        Returns:
            Number of kills this tick
        """
        kills = 0
        for result in attack_results:
            predator = self.get_agent(result.predator_id)
            prey = self.get_agent(result.prey_id)
            if predator is None or prey is None:
                continue

            if attack_lands(predator, prey, result.landing_range):
                self._kill(prey)
                kills += 1
            else:
                self.events['missed_attacks'] += 1

        self.events['kills'] += kills
        return kills

    def _kill(self, agent: Agent):
        agent.is_alive = False
        agent.set_state(AIState.DYING, Action.DIE)
        agent.current_frame = 0
        agent.animation_timer = 0.0
        agent.target_agent_id = None
        agent.stop()

    def _update_movement(self, agent: Agent, delta_time: float):
        """Integrate, clamp to bounds, and ease elevation toward the terrain"""
        if not agent.is_alive:
            return

        agent.position[0] += agent.velocity[0] * delta_time
        agent.position[1] += agent.velocity[1] * delta_time
        clamp_to_bounds(agent.position, self.config.bounds)

        target_z = self.terrain.sample(agent.position[0], agent.position[1]).elevation
        agent.position[2] += (target_z - agent.position[2]) * ELEVATION_SMOOTHING

    def check_invariants(self):
        """Assert population invariants (debug aid, used by tests)"""
        bounds = self.config.bounds
        seen = set()
        for row, agent in enumerate(self._agents):
            assert agent.agent_id not in seen, f"duplicate agent_id {agent.agent_id}"
            seen.add(agent.agent_id)
            assert self._row_of_id[agent.agent_id] == row
            assert 0.0 <= agent.alpha <= 1.0, f"alpha {agent.alpha} out of range"
            assert agent.action in VALID_ACTIONS[agent.ai_state], \
                f"illegal pairing {agent.ai_state} / {agent.action}"
            if agent.is_alive:
                assert bounds.contains(agent.position[0], agent.position[1]), \
                    f"agent {agent.agent_id} out of bounds at {agent.position}"

    # ========================================================================
    # Population Queries
    # ========================================================================

    @property
    def agents(self) -> Tuple[Agent, ...]:
        """
        The live Agent records (renderer input).

        The tuple is new but the records and their arrays are the
        simulation's own; callers must not mutate them. Use
        get_snapshot() for a detached copy.
        """
        return tuple(self._agents)

    def get_agent(self, agent_id: int) -> Optional[Agent]:
        row = self._row_of_id.get(agent_id)
        if row is None:
            return None
        return self._agents[row]

    @property
    def total_count(self) -> int:
        return len(self._agents)

    @property
    def alive_count(self) -> int:
        return sum(1 for a in self._agents if a.is_alive)

    @property
    def herbivore_count(self) -> int:
        return sum(1 for a in self._agents if a.is_alive and is_herbivore(a.species))

    @property
    def predator_count(self) -> int:
        return sum(1 for a in self._agents if a.is_alive and is_predator(a.species))

    @property
    def hazard_points(self) -> np.ndarray:
        return self._hazard_points.copy()

    # ========================================================================
    # Configuration Surface (effective on the next tick)
    # ========================================================================

    def set_bounds(self, bounds: Bounds):
        self.config.bounds = bounds
        self.terrain.bounds = bounds
        if self.terrain.field is not None:
            self.terrain.field.set_elevation_range(bounds.min_z, bounds.max_z)

    def set_hazard_points(self, points: Sequence[Sequence[float]]):
        """
        Replace the hazard point list wholesale.

        Args:
            points: Iterable of [x, y] or [x, y, z] positions
        """
        pts = np.asarray(points, dtype=np.float64)
        if pts.size == 0:
            self._hazard_points = np.empty((0, 3), dtype=np.float64)
            return

        pts = np.atleast_2d(pts)
        if pts.shape[1] == 2:
            pts = np.hstack([pts, np.zeros((len(pts), 1), dtype=np.float64)])
        self._hazard_points = pts

    def set_terrain_field(self, field: Optional[TerrainField]):
        """
        Attach the grid backend.

        The simulation's lava / water thresholds and elevation range are
        pushed onto the field; change them through this class afterwards.
        The field keeps its own refresh cadence.
        """
        self.terrain.field = field
        if field is not None:
            field.set_lava_threshold(self.config.lava_threshold)
            field.set_water_depth_threshold(self.config.water_depth_threshold)
            field.set_elevation_range(self.config.bounds.min_z, self.config.bounds.max_z)

    def set_height_function(self, height_at: Optional[Callable[[float, float], float]]):
        self.terrain.height_function = HeightFunctionTerrain(height_at) if height_at is not None else None

    def set_terrain_backend(self, backend: str):
        self.terrain.backend = backend
        self.config.terrain_backend = backend

    def refresh_terrain(self, source) -> bool:
        """Throttled refresh of the attached terrain field (no-op without one)"""
        if self.terrain.field is None:
            return False
        return self.terrain.field.refresh(source)

    def set_lava_threshold(self, threshold: float):
        self.config.lava_threshold = threshold
        if self.terrain.field is not None:
            self.terrain.field.set_lava_threshold(threshold)

    def set_water_depth_threshold(self, threshold: float):
        """Classification threshold: deeper water is Water terrain"""
        self.config.water_depth_threshold = threshold
        if self.terrain.field is not None:
            self.terrain.field.set_water_depth_threshold(threshold)

    def set_water_avoidance_depth(self, depth: float):
        """Agents avoid and never spawn in water deeper than this"""
        self.config.water_avoidance_depth = depth

    def set_hand_flee_radius(self, radius: float):
        self.config.hand_flee_radius = radius

    def set_flee_persistence(self, seconds: float):
        self.config.flee_persistence = seconds

    def set_respawn_delay(self, seconds: float):
        self.config.respawn_delay = seconds

    def set_animation_speed(self, frames_per_second: float):
        """Applies to agents spawned or respawned later and to existing agents"""
        self.config.animation_speed = frames_per_second
        for agent in self._agents:
            agent.frame_time = 1.0 / frames_per_second

    def set_speed_scale(self, scale: float):
        self.config.speed_scale = scale

    # ========================================================================
    # Observability
    # ========================================================================

    def get_tick_stats(self) -> dict:
        """
        Get current tick timing statistics.

        Returns:
            Dict with tick_count, avg_tick_time_ms, last_tick_time_ms
        """
        if not self._tick_times:
            return {
                'tick_count': self.tick_count,
                'avg_tick_time_ms': 0.0,
                'last_tick_time_ms': 0.0
            }

        avg_time = self._tick_time_sum / len(self._tick_times)
        last_time = self._tick_times[-1]

        return {
            'tick_count': self.tick_count,
            'avg_tick_time_ms': avg_time * 1000.0,
            'last_tick_time_ms': last_time * 1000.0
        }

    def _record_tick_time(self, elapsed: float):
        """
        Record tick timing for rolling average.

        Args:
            elapsed: Tick time in seconds
        """
        self._tick_times.append(elapsed)
        self._tick_time_sum += elapsed

        # Maintain rolling window
        if len(self._tick_times) > self._tick_time_window:
            removed = self._tick_times.pop(0)
            self._tick_time_sum -= removed

    def _record_phase_time(self, samples: List[float], elapsed: float):
        """Append a phase timing, keeping at most PHASE_TIME_WINDOW samples"""
        samples.append(elapsed)
        if len(samples) > self._phase_time_window:
            del samples[0]

    def get_snapshot(self) -> dict:
        """
        Get complete simulation state snapshot.

        Returns:
            Dict with tick_count, counts, agents, timing
        """
        return {
            'tick_count': self.tick_count,
            'sim_time': self.sim_time,
            'agent_count': self.total_count,
            'alive_count': self.alive_count,
            'herbivore_count': self.herbivore_count,
            'predator_count': self.predator_count,
            'agents': [a.to_dict() for a in self._agents],
            'events': dict(self.events),
            'timing': self.get_tick_stats()
        }

    def print_tick_summary(self):
        """Print tick summary to console (lightweight monitoring)"""
        stats = self.get_tick_stats()
        print(f"Tick {stats['tick_count']:5d} | "
              f"Avg: {stats['avg_tick_time_ms']:6.3f} ms | "
              f"Last: {stats['last_tick_time_ms']:6.3f} ms | "
              f"Alive: {self.alive_count}/{self.total_count} "
              f"(H {self.herbivore_count}, P {self.predator_count}) | "
              f"Kills: {self.events['kills']} Respawns: {self.events['respawns']}")

    def print_perf_breakdown(self, every: int = 200):
        """
        Print per-phase timing averaged over the last `every` ticks.

        Only prints when tick_count is a multiple of `every`.
        """
        if self.tick_count % every != 0:
            return

        window = min(every, len(self._build_times))
        if window == 0:
            return

        avg_build = sum(self._build_times[-window:]) / window * 1000.0
        avg_behavior = sum(self._behavior_times[-window:]) / window * 1000.0
        avg_attack = sum(self._attack_times[-window:]) / window * 1000.0
        avg_movement = sum(self._movement_times[-window:]) / window * 1000.0
        avg_total = sum(self._tick_times[-window:]) / min(window, len(self._tick_times)) * 1000.0

        print(f"\n[Perf Breakdown] Tick {self.tick_count} ({self.total_count} agents)")
        print(f"  Index build:  {avg_build:6.3f} ms")
        print(f"  Behavior:     {avg_behavior:6.3f} ms")
        print(f"  Attacks:      {avg_attack:6.3f} ms")
        print(f"  Anim+Move:    {avg_movement:6.3f} ms")
        print(f"  Total:        {avg_total:6.3f} ms")
        print(f"  Overhead:     {(avg_total - avg_build - avg_behavior - avg_attack - avg_movement):6.3f} ms")
