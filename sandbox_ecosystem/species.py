"""
Species catalog.

Fixed table of per-species parameters keyed by the Species enum. Role
differences are pure data: predicates look up the descriptor, there is
no per-species subclassing. Also builds the sprite sheet paths and
atlas cells the external renderer consumes.
"""

from enum import Enum
from typing import Dict, List, Tuple

from .data_types import Action, Direction, Role, SpeciesDescriptor


class Species(Enum):
    TRICERATOPS = "triceratops"
    STEGOSAURUS = "stegosaurus"
    PARASAUROLOPHUS = "parasaurolophus"
    GALLIMIMUS = "gallimimus"
    TREX = "t_rex"
    VELOCIRAPTOR = "velociraptor"
    RAPTOR_BLUE = "blue_raptor"
    RAPTOR_GREEN = "green_raptor"
    RAPTOR_RED = "red_raptor"


# Frame counts per action (Idle, Walk, Run, Attack, Die, TakeDamage)
_FRAMES = (15, 15, 15, 15, 15, 15)

_RAPTOR = dict(walk_speed=0.020, run_speed=0.050, sight_range=0.18, attack_range=0.015)

SPECIES_TABLE: Dict[Species, SpeciesDescriptor] = {
    # Sturdy herbivore, herds together
    Species.TRICERATOPS: SpeciesDescriptor(
        "Triceratops", "triceratops", Role.HERBIVORE,
        walk_speed=0.015, run_speed=0.035, sight_range=0.15, attack_range=0.0,
        frames_per_action=_FRAMES),
    # Slow, peaceful grazer
    Species.STEGOSAURUS: SpeciesDescriptor(
        "Stegosaurus", "stegosaurus", Role.HERBIVORE,
        walk_speed=0.010, run_speed=0.025, sight_range=0.12, attack_range=0.0,
        frames_per_action=_FRAMES),
    # Skittish runner, spots danger early
    Species.PARASAUROLOPHUS: SpeciesDescriptor(
        "Parasaurolophus", "parasaurolophus", Role.HERBIVORE,
        walk_speed=0.018, run_speed=0.045, sight_range=0.18, attack_range=0.0,
        frames_per_action=_FRAMES),
    # Fastest herbivore
    Species.GALLIMIMUS: SpeciesDescriptor(
        "Gallimimus", "gallimimus", Role.HERBIVORE,
        walk_speed=0.022, run_speed=0.055, sight_range=0.20, attack_range=0.0,
        frames_per_action=_FRAMES),
    # Slow but powerful, big bite radius
    Species.TREX: SpeciesDescriptor(
        "T-Rex", "t_rex", Role.PREDATOR,
        walk_speed=0.012, run_speed=0.030, sight_range=0.25, attack_range=0.025,
        frames_per_action=_FRAMES),
    Species.VELOCIRAPTOR: SpeciesDescriptor(
        "Velociraptor", "velociraptor", Role.PREDATOR,
        frames_per_action=_FRAMES, **_RAPTOR),
    Species.RAPTOR_BLUE: SpeciesDescriptor(
        "Blue Raptor", "blue_raptor", Role.PREDATOR,
        frames_per_action=_FRAMES, **_RAPTOR),
    Species.RAPTOR_GREEN: SpeciesDescriptor(
        "Green Raptor", "green_raptor", Role.PREDATOR,
        frames_per_action=_FRAMES, **_RAPTOR),
    Species.RAPTOR_RED: SpeciesDescriptor(
        "Red Raptor", "red_raptor", Role.PREDATOR,
        frames_per_action=_FRAMES, **_RAPTOR),
}

# Sprite sheet file stem per action ("attack1" is the default attack sheet)
ACTION_NAMES: Dict[Action, str] = {
    Action.IDLE: "idle",
    Action.WALK: "walk",
    Action.RUN: "run",
    Action.ATTACK: "attack1",
    Action.DIE: "die",
    Action.TAKEDAMAGE: "takedamage",
}

SPRITE_SUFFIX = "Shadowless.png"


def get_species_info(species: Species) -> SpeciesDescriptor:
    return SPECIES_TABLE[species]


def is_predator(species: Species) -> bool:
    return SPECIES_TABLE[species].role is Role.PREDATOR


def is_herbivore(species: Species) -> bool:
    return SPECIES_TABLE[species].role is Role.HERBIVORE


def species_by_role(role: Role) -> List[Species]:
    """All species with the given role, in table order"""
    return [s for s, info in SPECIES_TABLE.items() if info.role is role]


def species_from_name(name: str) -> Species:
    """
    Resolve a configuration name to a Species.

    Accepts the enum member name ("TREX") or the sprite folder value
    ("t_rex"), case-insensitively.

    Raises:
        KeyError: Unknown species name
    """
    key = name.strip()
    if key.upper() in Species.__members__:
        return Species[key.upper()]
    for species in Species:
        if species.value == key.lower():
            return species
    raise KeyError(f"Unknown species: {name}")


def spritesheet_path(species: Species, action: Action) -> str:
    """
    Relative sprite sheet path for a species/action pair.

    The renderer prepends its sprite directory.

    Example:
        spritesheet_path(Species.TREX, Action.RUN) -> "t_rex/run_Shadowless.png"
    """
    info = SPECIES_TABLE[species]
    return f"{info.sprite_folder}/{ACTION_NAMES[action]}_{SPRITE_SUFFIX}"


def frame_uv(direction: Direction, frame: int, frame_count: int) -> Tuple[float, float, float, float]:
    """
    Texture cell for one frame in a direction x frame sprite atlas.

    Sheets are laid out as 8 rows (N, NE, E, SE, S, SW, W, NW from top)
    by frame_count columns.

    Returns:
        (u, v, du, dv) offset and size in normalized texture coordinates
    """
    num_directions = len(Direction)
    du = 1.0 / float(frame_count)
    dv = 1.0 / float(num_directions)
    return float(frame) * du, float(int(direction)) * dv, du, dv
