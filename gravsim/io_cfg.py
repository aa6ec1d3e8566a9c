"""Configuration module for the gravity simulator.

This module provides:
- YAML configuration loading into a ready-to-run System
- Configuration validation (hard errors and advisory warnings)
- Example config generation

A configuration has four sections:

```yaml
system:                 # required: preset name OR explicit bodies
  preset: solar_system
numerics:               # required
  dt: 36.0              # days per step
  steps: 1000
  scheme: 3             # 1 = euler, 2 = average, 3 = parabolic
reference:              # optional: state to compare the final state with
  preset: solar_system_final
outputs:                # optional
  save_every: 0
  table_rows: 20
  compare_body: Earth
```

An explicit body list replaces `preset`:

```yaml
system:
  time: 0.0
  bodies:
    - {name: Sun, gm: 2.959122082855911e-04, x: [0, 0, 0], v: [0, 0, 0]}
    - {name: Earth, gm: 8.997011346712499e-10, x: [1, 0, 0], v: [0, 0.0172021, 0]}
```
"""

from typing import Any, Dict, List, Optional, Tuple
from pathlib import Path
import warnings

import numpy as np
import yaml

from gravsim.dynamics import SCHEMES, estimate_orbital_period
from gravsim.ephemeris import PRESETS, load_preset
from gravsim.system import MAX_BODIES, System


def _parse_system(section: Dict[str, Any], label: str, capacity: int) -> System:
    """Build a System from a `system:` or `reference:` section."""
    if not isinstance(section, dict):
        raise ValueError(f"Configuration '{label}' must be a mapping")

    if 'preset' in section:
        if 'bodies' in section:
            raise ValueError(
                f"Configuration '{label}': give either 'preset' or 'bodies', not both"
            )
        system = load_preset(str(section['preset']), capacity)
        if 'time' in section:
            system = system.with_time(float(section['time']))
        return system

    if 'bodies' not in section:
        raise KeyError(f"Configuration '{label}' needs a 'preset' or a 'bodies' list")

    bodies_cfg = section['bodies']
    if not isinstance(bodies_cfg, list) or len(bodies_cfg) == 0:
        raise ValueError(f"Configuration '{label}.bodies' must be a non-empty list")

    rows = []
    for i, body_cfg in enumerate(bodies_cfg):
        try:
            name = str(body_cfg['name'])
            gm = float(body_cfg['gm'])
            x = np.array(body_cfg['x'], dtype=float)
            v = np.array(body_cfg['v'], dtype=float)
        except KeyError as e:
            raise KeyError(f"{label} body {i} missing required field {e}")
        except (ValueError, TypeError) as e:
            name = body_cfg.get('name', 'unnamed') if isinstance(body_cfg, dict) else 'unnamed'
            raise ValueError(f"{label} body {i} ('{name}'): {e}")
        rows.append((name, gm, x, v))

    # Body/BodyState validation (gm >= 0, shape (3,)) and the capacity
    # check happen here and surface as ValueError / CapacityError.
    return System.from_table(rows, float(section.get('time', 0.0)), capacity)


def load_config(yaml_path: str) -> Dict[str, Any]:
    """Load and parse a YAML configuration file.

    Parameters
    ----------
    yaml_path : str
        Path to YAML configuration file.

    Returns
    -------
    dict
        - 'system': System at its initial time
        - 'numerics': dict with 'dt', 'steps', 'scheme', 'capacity'
        - 'reference': System or None
        - 'outputs': dict with 'save_every', 'table_rows', 'compare_body'

    Raises
    ------
    FileNotFoundError
        If yaml_path does not exist.
    yaml.YAMLError
        If YAML parsing fails.
    KeyError
        If a required section or field is missing.
    ValueError
        If a value is invalid (negative gm, wrong vector length, unknown
        preset). `CapacityError`, a ValueError, if the system has too many
        bodies.

    Examples
    --------
    >>> config = load_config("solar_system.yaml")
    >>> len(config['system'])
    10
    >>> config['numerics']['scheme']
    3
    """
    yaml_path = Path(yaml_path)
    if not yaml_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    with open(yaml_path, 'r') as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None or not isinstance(raw_config, dict):
        raise ValueError(f"Empty or invalid YAML file: {yaml_path}")

    # Parse numerics first: capacity applies to both systems
    if 'numerics' not in raw_config:
        raise KeyError("Configuration missing required section 'numerics'")

    numerics_cfg = raw_config['numerics']
    try:
        numerics = {
            'dt': float(numerics_cfg['dt']),
            'steps': int(numerics_cfg['steps']),
            'scheme': int(numerics_cfg.get('scheme', 3)),
            'capacity': int(numerics_cfg.get('capacity', MAX_BODIES)),
        }
    except KeyError as e:
        raise KeyError(f"Configuration 'numerics' missing required field {e}")
    except (ValueError, TypeError) as e:
        raise ValueError(f"Configuration 'numerics': {e}")

    if 'system' not in raw_config:
        raise KeyError("Configuration missing required section 'system'")
    system = _parse_system(raw_config['system'], 'system', numerics['capacity'])

    reference: Optional[System] = None
    if raw_config.get('reference') is not None:
        reference = _parse_system(raw_config['reference'], 'reference', numerics['capacity'])
        missing = [n for n in system.names() if n not in reference.names()]
        if missing:
            raise ValueError(
                f"Reference state is missing bodies present in the system: {missing}"
            )

    outputs_cfg = raw_config.get('outputs') or {}
    outputs = {
        'save_every': int(outputs_cfg.get('save_every', 0)),
        'table_rows': int(outputs_cfg.get('table_rows', 20)),
        'compare_body': outputs_cfg.get('compare_body'),
    }

    if outputs['compare_body'] is not None and outputs['compare_body'] not in system.names():
        warnings.warn(
            f"compare_body '{outputs['compare_body']}' is not in the system; "
            f"the comparison summary will use every body",
            UserWarning
        )
        outputs['compare_body'] = None

    return {
        'system': system,
        'numerics': numerics,
        'reference': reference,
        'outputs': outputs,
    }


def validate_config(config: Dict[str, Any]) -> Tuple[bool, List[str]]:
    """Validate configuration for consistency and numerical sanity.

    Hard errors make `is_valid` False:
    - non-positive dt or steps
    - unknown integration scheme
    - negative save_every

    Advisory messages only:
    - dt larger than 1% of the shortest estimated orbital period about the
      first body (accuracy, especially for scheme 1)
    - reference time not reached exactly by time + steps * dt

    Parameters
    ----------
    config : dict
        Configuration dictionary from load_config().

    Returns
    -------
    is_valid : bool
        True if the configuration can be run (may still have warnings).
    warnings_list : list of str
        Messages about errors and potential issues.
    """
    warnings_list = []
    is_valid = True

    try:
        system = config['system']
        numerics = config['numerics']
        reference = config.get('reference')
        outputs = config['outputs']
    except KeyError as e:
        return False, [f"Missing required config section: {e}"]

    dt = numerics['dt']
    steps = numerics['steps']

    if dt <= 0:
        is_valid = False
        warnings_list.append(f"Timestep dt must be positive, got {dt}")

    if steps <= 0:
        is_valid = False
        warnings_list.append(f"Number of steps must be positive, got {steps}")

    if numerics['scheme'] not in SCHEMES:
        is_valid = False
        warnings_list.append(
            f"Unknown integration scheme {numerics['scheme']}; "
            f"expected one of {sorted(SCHEMES)}"
        )

    if outputs['save_every'] < 0:
        is_valid = False
        warnings_list.append(f"save_every must be non-negative, got {outputs['save_every']}")

    if len(system) < 1:
        is_valid = False
        warnings_list.append("Configuration must have at least one body")
        return is_valid, warnings_list

    # Shortest Kepler period about the primary (body 0)
    if len(system) >= 2 and dt > 0:
        periods = []
        for j in range(1, len(system)):
            gm_total = system.bodies[0].gm + system.bodies[j].gm
            if gm_total > 0:
                periods.append(estimate_orbital_period(system, 0, j))
        if periods:
            T_min = min(periods)
            if dt > 0.01 * T_min:
                warnings_list.append(
                    f"Timestep dt = {dt:.3e} days is large compared to the "
                    f"shortest estimated orbital period T ~ {T_min:.3e} days. "
                    f"Consider dt < {0.01 * T_min:.3e} for accuracy."
                )

    if reference is not None and dt > 0 and steps > 0:
        t_end = system.simulated_time + steps * dt
        if not np.isclose(t_end, reference.simulated_time, rtol=1e-9, atol=1e-9):
            warnings_list.append(
                f"Run ends at t = {t_end:.6f} days but the reference state is at "
                f"t = {reference.simulated_time:.6f} days; comparison is not "
                f"like-for-like."
            )

    return is_valid, warnings_list


def create_example_config(output_path: str, preset: str = 'solar_system') -> Dict[str, Any]:
    """Write an example YAML configuration and return the raw dict.

    The example integrates the ten-body Solar System from TT = 0 to the
    TT = 36000 reference with scheme 3 and 1000 steps of 36 days. With
    preset='sun_earth' it runs one year of the two-body system in 1-day
    steps instead.

    Examples
    --------
    >>> raw = create_example_config("solar_system.yaml")
    >>> raw['numerics']['steps']
    1000
    """
    if preset == 'solar_system':
        raw = {
            'system': {'preset': 'solar_system'},
            'numerics': {'dt': 36.0, 'steps': 1000, 'scheme': 3},
            'reference': {'preset': 'solar_system_final'},
            'outputs': {'save_every': 0, 'table_rows': 20, 'compare_body': 'Earth'},
        }
    elif preset in PRESETS:
        system = load_preset(preset)
        raw = {
            'system': {
                'time': system.simulated_time,
                'bodies': [
                    {
                        'name': body.name,
                        'gm': body.gm,
                        'x': state.position.tolist(),
                        'v': state.velocity.tolist(),
                    }
                    for body, state in system
                ],
            },
            'numerics': {'dt': 1.0, 'steps': 365, 'scheme': 3},
            'outputs': {'save_every': 73, 'table_rows': 20},
        }
    else:
        raise ValueError(f"Unknown preset '{preset}'; expected one of {sorted(PRESETS)}")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w') as f:
        f.write("# gravsim configuration\n")
        yaml.safe_dump(raw, f, sort_keys=False, default_flow_style=None)

    return raw
