"""Schedule policy: the numeric thresholds behind severity and suggestions.

The defaults are the dashboard's long-standing values. Product can tune them
per agency with a YAML file of ``field: value`` overrides.
"""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml


@dataclass(frozen=True)
class SchedulePolicy:
    # Cascade severity bands: a cascade stays in a band while BOTH the
    # affected count and the maximum delay are within its limits.
    low_max_affected: int = 2
    low_max_delay_days: int = 2
    medium_max_affected: int = 5
    medium_max_delay_days: int = 7
    high_max_affected: int = 10
    high_max_delay_days: int = 14

    escalate_on_critical_path: bool = True

    # Suggestion rules fire when the value is strictly greater.
    compress_when_affected_over: int = 5
    shift_phase_when_delay_over: int = 7

    # Readiness report.
    bottleneck_min_blocked: int = 3

    # Projects without an explicit deadline get the last stage end plus this.
    deadline_grace_days: int = 30


DEFAULT_POLICY = SchedulePolicy()


class PolicyConfigError(ValueError):
    pass


def load_policy_file(path: str | Path) -> dict[str, Any]:
    """Load policy overrides from a YAML file.

    Format:
      <field>: <int|bool>

    Returns a mapping of field name -> value. Unknown names and wrong types
    are rejected.
    """
    p = Path(path)
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise PolicyConfigError(f"policy file is not valid YAML: {e}") from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise PolicyConfigError("policy file must be a mapping of field -> value")

    known = {f.name: f.type for f in fields(SchedulePolicy)}
    out: dict[str, Any] = {}
    for k, v in raw.items():
        if not isinstance(k, str) or k not in known:
            raise PolicyConfigError(f"unknown policy field: {k} (known: {', '.join(sorted(known))})")
        if known[k] == "bool":
            if not isinstance(v, bool):
                raise PolicyConfigError(f"policy field '{k}' must be a boolean")
        else:
            if isinstance(v, bool) or not isinstance(v, int) or v < 0:
                raise PolicyConfigError(f"policy field '{k}' must be a non-negative integer")
        out[k] = v
    return out


def merged_policy(overrides: dict[str, Any] | None = None) -> SchedulePolicy:
    """Return DEFAULT_POLICY with optional overrides applied."""
    policy = replace(DEFAULT_POLICY, **(overrides or {}))
    _check_bands(policy)
    return policy


def load_and_merge(policy_file: str | None) -> SchedulePolicy:
    if not policy_file:
        return merged_policy()
    return merged_policy(load_policy_file(policy_file))


def policy_to_dict(policy: SchedulePolicy) -> dict[str, Any]:
    return {f.name: getattr(policy, f.name) for f in fields(SchedulePolicy)}


def _check_bands(policy: SchedulePolicy) -> None:
    if not (policy.low_max_affected <= policy.medium_max_affected <= policy.high_max_affected):
        raise PolicyConfigError("affected-count bands must be non-decreasing (low <= medium <= high)")
    if not (
        policy.low_max_delay_days <= policy.medium_max_delay_days <= policy.high_max_delay_days
    ):
        raise PolicyConfigError("delay bands must be non-decreasing (low <= medium <= high)")
    if policy.deadline_grace_days < 0:
        raise PolicyConfigError("deadline_grace_days must be >= 0")
