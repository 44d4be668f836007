"""
Central configuration constants for the sandbox ecosystem simulation.

Defines default values, thresholds, and configuration parameters
used across multiple modules. Horizontal distances are in sandbox
world units (the calibrated table spans roughly one unit); elevations
are in the depth camera's units.
"""

# ============================================================================
# Bounds Defaults (replaced after calibration via set_bounds)
# ============================================================================

DEFAULT_BOUNDS = {
    'min_x': -0.5, 'max_x': 0.5,
    'min_y': -0.4, 'max_y': 0.4,
    'min_z': -20.0, 'max_z': 100.0,
}


# ============================================================================
# Terrain Field Configuration
# ============================================================================

# Elevation below which terrain is classified as lava
LAVA_THRESHOLD_DEFAULT = -10.0

# Water depth above which terrain is classified as water
WATER_DEPTH_THRESHOLD_DEFAULT = 0.5

# Grid refresh throttle: pull fresh grids every N refresh() calls
TERRAIN_UPDATE_FREQUENCY_DEFAULT = 5

# Terrain backend preference when both grid and height function exist
TERRAIN_BACKEND_GRID = "grid"
TERRAIN_BACKEND_HEIGHT_FUNCTION = "height_function"
TERRAIN_BACKENDS = (TERRAIN_BACKEND_GRID, TERRAIN_BACKEND_HEIGHT_FUNCTION)


# ============================================================================
# Threat / Hazard Configuration
# ============================================================================

# Water depth at which agents start avoiding a cell (and spawning rejects it)
WATER_AVOIDANCE_DEPTH_DEFAULT = 0.5

# Herbivores flee hazard points (hands) closer than this
HAND_FLEE_RADIUS_DEFAULT = 0.15

# Effective distance assigned to lava underfoot (beats any other threat)
LAVA_THREAT_DISTANCE = 0.01

# Random perturbation added per axis to the flee direction (+/- half of this)
FLEE_JITTER = 0.3

# Seconds a herbivore keeps fleeing after the last detected threat
FLEE_PERSISTENCE_DEFAULT = 2.0


# ============================================================================
# AI Timing Configuration (seconds)
# ============================================================================

IDLE_DWELL_MIN = 1.0
IDLE_DWELL_SPAN = 3.0          # Idle lasts 1-4 s

GRAZE_CHANCE = 0.3             # Idle -> Grazing probability
GRAZE_DWELL_MIN = 2.0
GRAZE_DWELL_SPAN = 4.0         # Grazing lasts 2-6 s

ATTACK_DURATION = 1.0          # Attack animation before resolution
PATROL_TIMEOUT = 5.0           # Predator re-targets after this long wandering

SPAWN_STATE_TIMER_STAGGER = 2.0  # Initial state timer drawn from [0, 2)


# ============================================================================
# Movement / Steering Configuration
# ============================================================================

# Distance at which a wandering agent has reached its target
ARRIVAL_EPSILON = 0.02

# Wander target search
WANDER_RADIUS = 0.15
WANDER_ATTEMPTS = 20

# Herding: same-species neighbours within this radius pull the wander target
HERD_RADIUS = 0.15
HERD_BLEND = 0.4               # target = 0.6 * wander + 0.4 * herd centroid

# Kill lands if prey is within this multiple of attack range at resolution
ATTACK_LANDING_FACTOR = 2.0

# Hazard avoidance probing
BOUNDARY_MARGIN = 0.05
AVOIDANCE_PROBE_DISTANCE = 0.03
AVOIDANCE_LAVA_WEIGHT = 2.0
AVOIDANCE_WATER_WEIGHT = 1.0
AVOIDANCE_SPEED_FACTOR = 0.5   # avoidance added at half walk speed
AVOIDANCE_MIN_MAGNITUDE = 1e-3

# Vertical terrain following (fraction of remaining gap closed per tick)
ELEVATION_SMOOTHING = 0.1

# Global movement speed multiplier
SPEED_SCALE_DEFAULT = 1.0

# Minimum magnitude for normalization and facing updates
VECTOR_EPSILON = 1e-3


# ============================================================================
# Animation / Lifecycle Configuration
# ============================================================================

ANIMATION_SPEED_DEFAULT = 12.0   # frames per second
DEATH_FADE_RATE = 0.5            # alpha lost per second after the death animation
RESPAWN_DELAY_DEFAULT = 8.0      # seconds from fully faded to respawn


# ============================================================================
# Spawning Configuration
# ============================================================================

SPAWN_ATTEMPTS = 100

# Initial population policy (species name -> count)
INITIAL_POPULATION = {
    'TRICERATOPS': 5,
    'STEGOSAURUS': 3,
    'PARASAUROLOPHUS': 4,
    'GALLIMIMUS': 3,
    'TREX': 2,
    'VELOCIRAPTOR': 4,
    'RAPTOR_BLUE': 1,
    'RAPTOR_RED': 1,
}


# ============================================================================
# Spatial Indexing Configuration
# ============================================================================

# Use scipy.cKDTree for per-tick agent queries
# Set to False to use O(n) scans for A/B comparison
USE_CKDTREE = True
CKDTREE_LEAFSIZE = 16


# ============================================================================
# Performance Configuration
# ============================================================================

# Tick timing window for rolling average
TICK_TIME_WINDOW = 100  # Number of ticks to average

# Per-phase timing samples kept for print_perf_breakdown (largest `every`)
PHASE_TIME_WINDOW = 1000
