"""
YAML configuration loader with schema validation.

Loads the simulation parameters and the initial population policy from
a YAML file and validates it against the packaged JSON schema.
"""

import yaml
import json
from pathlib import Path
from typing import Dict, Optional, Tuple
import jsonschema

from .data_types import Bounds, SimulationConfig
from .species import species_from_name
from .constants import TERRAIN_BACKENDS


PACKAGE_ROOT = Path(__file__).resolve().parent
DEFAULT_SCHEMA_DIR = PACKAGE_ROOT / "schemas"
DEFAULT_CONFIG_PATH = PACKAGE_ROOT / "data" / "ecosystem.yaml"

# YAML key -> SimulationConfig field (identical names)
SIMULATION_FIELDS = (
    'lava_threshold',
    'water_depth_threshold',
    'water_avoidance_depth',
    'hand_flee_radius',
    'flee_persistence',
    'respawn_delay',
    'animation_speed',
    'speed_scale',
    'terrain_update_frequency',
    'terrain_backend',
    'seed',
)


class ConfigLoadError(Exception):
    """Raised when configuration loading or validation fails"""
    pass


def load_yaml(file_path: Path) -> dict:
    """Load YAML file and return parsed dict"""
    if not file_path.exists():
        raise ConfigLoadError(f"File not found: {file_path}")

    try:
        with open(file_path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"YAML parse error in {file_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigLoadError(f"Expected a mapping at top level of {file_path}")
    return data


def validate_against_schema(data: dict, schema_path: Path, data_path: Path):
    """Validate data dict against JSON schema"""
    if not schema_path.exists():
        print(f"[WARN] Schema not found, skipping validation: {schema_path}")
        return

    try:
        with open(schema_path, 'r') as f:
            schema = json.load(f)
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        raise ConfigLoadError(f"Validation error in {data_path}: {e.message}")
    except json.JSONDecodeError as e:
        raise ConfigLoadError(f"Invalid JSON schema {schema_path}: {e}")


def parse_bounds(data: dict) -> Bounds:
    """Build Bounds, defaulting any omitted edge"""
    bounds = Bounds(**data)
    if bounds.min_x >= bounds.max_x or bounds.min_y >= bounds.max_y:
        raise ConfigLoadError(f"Degenerate bounds: {data}")
    if bounds.min_z > bounds.max_z:
        raise ConfigLoadError(f"Inverted elevation range: {data}")
    return bounds


def parse_population(data: Dict[str, int]) -> Dict[str, int]:
    """Check every population entry names a known species"""
    for name in data:
        try:
            species_from_name(name)
        except KeyError:
            raise ConfigLoadError(f"Unknown species in population: {name}")
    return dict(data)


def load_config(
    file_path: Path,
    schema_dir: Optional[Path] = None
) -> Tuple[SimulationConfig, Optional[Dict[str, int]]]:
    """
    Load simulation configuration from YAML.

    Args:
        file_path: Path to the configuration file
        schema_dir: Directory holding ecosystem.schema.json
            (defaults to the packaged schemas/)

    Returns:
        (SimulationConfig, population mapping or None if the file has none)

    Raises:
        ConfigLoadError: Missing file, YAML error, or schema violation
    """
    file_path = Path(file_path)
    data = load_yaml(file_path)

    if schema_dir is None:
        schema_dir = DEFAULT_SCHEMA_DIR
    validate_against_schema(data, Path(schema_dir) / "ecosystem.schema.json", file_path)

    simulation = data.get('simulation', {})
    kwargs = {key: simulation[key] for key in SIMULATION_FIELDS if key in simulation}

    backend = kwargs.get('terrain_backend')
    if backend is not None and backend not in TERRAIN_BACKENDS:
        raise ConfigLoadError(f"Unknown terrain backend '{backend}' in {file_path}")

    config = SimulationConfig(bounds=parse_bounds(data.get('bounds', {})), **kwargs)

    population = None
    if 'population' in data:
        population = parse_population(data['population'])

    return config, population


def load_default_config() -> Tuple[SimulationConfig, Optional[Dict[str, int]]]:
    """Load the packaged default configuration"""
    return load_config(DEFAULT_CONFIG_PATH)
