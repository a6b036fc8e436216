# config.py
"""
Gate configuration.

Loaded once at startup into a frozen `GateConfig` and passed explicitly to
whatever needs it. Sources, first found wins:

  1. --config PATH
  2. qualitygate.toml in the root
  3. [tool.qualitygate] in pyproject.toml
  4. built-in defaults

Example qualitygate.toml:

    rules_file = ".lints"

    [thresholds]
    coverage = 90.0

    [enabled]
    mutation = false

    [hygiene]
    marker_allow = ["docs/CHANGELOG.md"]

    [subsets.quick]
    jobs = ["lint"]
    hygiene = true
"""
from __future__ import annotations

import re
import tomllib
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .hygiene import DEFAULT_IGNORE, EncodingScanner, LineEndingScanner, MarkerScanner, Scanner
from .model import Job
from .rules import DEFAULT_RULES_FILE
from .thresholds import DEFAULT_THRESHOLDS, ThresholdSpec, threshold_specs

CONFIG_FILE = "qualitygate.toml"
HYGIENE_CHECKS = ("encoding", "line-endings", "markers")


class SubsetConfig(BaseModel):
    """A named job subset; `jobs=None` means every job."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    jobs: Optional[Tuple[str, ...]] = None
    hygiene: bool = True


DEFAULT_SUBSETS: Dict[str, SubsetConfig] = {
    "all": SubsetConfig(),
    "lint-only": SubsetConfig(jobs=("lint",)),
    "coverage-only": SubsetConfig(jobs=("coverage",), hygiene=False),
    "test-only": SubsetConfig(jobs=("test",), hygiene=False),
    "hygiene-only": SubsetConfig(jobs=(), hygiene=True),
}


class HygieneConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    checks: Tuple[str, ...] = HYGIENE_CHECKS
    encoding: str = "utf-8"
    ignore: Tuple[str, ...] = DEFAULT_IGNORE
    encoding_ignore: Tuple[str, ...] = ()
    line_ending_allow: Tuple[str, ...] = ()
    marker_pattern: str = r"\bTODO\b"
    marker_allow: Tuple[str, ...] = ()

    @field_validator("checks")
    @classmethod
    def _known_checks(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        unknown = sorted(set(v) - set(HYGIENE_CHECKS))
        if unknown:
            raise ValueError(f"unknown hygiene checks {unknown}; known: {list(HYGIENE_CHECKS)}")
        return v

    @field_validator("marker_pattern")
    @classmethod
    def _compiles(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid marker pattern: {e}") from e
        return v

    @field_validator("encoding")
    @classmethod
    def _known_encoding(cls, v: str) -> str:
        try:
            b"".decode(v)
        except LookupError as e:
            raise ValueError(str(e)) from e
        return v

    def scanners(self) -> List[Scanner]:
        built: Dict[str, Scanner] = {
            "encoding": EncodingScanner(encoding=self.encoding, ignore=self.encoding_ignore),
            "line-endings": LineEndingScanner(allow=self.line_ending_allow),
            "markers": MarkerScanner(pattern=self.marker_pattern, allow=self.marker_allow),
        }
        return [built[name] for name in self.checks]


class GateConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    rules_file: str = DEFAULT_RULES_FILE
    workflow: Optional[str] = None
    thresholds: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_THRESHOLDS))
    enabled: Dict[str, bool] = Field(default_factory=dict)
    workers: Optional[int] = Field(default=None, ge=1)
    deadline: Optional[float] = Field(default=None, ge=0)
    fail_fast: bool = False
    hygiene: HygieneConfig = Field(default_factory=HygieneConfig)
    subsets: Dict[str, SubsetConfig] = Field(default_factory=lambda: dict(DEFAULT_SUBSETS))

    @field_validator("thresholds")
    @classmethod
    def _merge_thresholds(cls, v: Dict[str, float]) -> Dict[str, float]:
        return {**DEFAULT_THRESHOLDS, **v}

    @field_validator("subsets")
    @classmethod
    def _merge_subsets(cls, v: Dict[str, SubsetConfig]) -> Dict[str, SubsetConfig]:
        return {**DEFAULT_SUBSETS, **v}

    def threshold_specs(self) -> Dict[str, ThresholdSpec]:
        return threshold_specs(self.thresholds)

    def subset(self, name: str) -> SubsetConfig:
        try:
            return self.subsets[name]
        except KeyError:
            raise ConfigError(f"unknown subset '{name}'", {"known": sorted(self.subsets)}) from None

    def with_overrides(
        self,
        *,
        thresholds: Optional[Mapping[str, float]] = None,
        enabled: Optional[Mapping[str, bool]] = None,
    ) -> "GateConfig":
        """Return a new config with CLI overrides layered on top."""
        update: dict = {}
        if thresholds:
            update["thresholds"] = {**self.thresholds, **{k: float(v) for k, v in thresholds.items()}}
        if enabled:
            update["enabled"] = {**self.enabled, **enabled}
        return self.model_copy(update=update) if update else self

    def apply(self, jobs: List[Job]) -> List[Job]:
        """Apply `enabled` overrides to a workflow's jobs."""
        known = {j.name for j in jobs}
        unknown = sorted(set(self.enabled) - known)
        if unknown:
            raise ConfigError(f"enabled/disabled jobs not in workflow: {unknown}", {"known": sorted(known)})
        return [
            replace(j, enabled=self.enabled[j.name]) if j.name in self.enabled else j
            for j in jobs
        ]


def _read_toml(path: Path) -> dict:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {path}", {"cause": e}) from e
    except OSError as e:
        raise ConfigError(f"cannot read {path}", {"cause": e}) from e


def find_config(root: str | Path, path: str | Path | None = None) -> Tuple[Optional[Path], dict]:
    """Return (source, raw table) following the documented lookup order."""
    root_p = Path(root)
    if path is not None:
        p = Path(path)
        if not p.is_file():
            raise ConfigError(f"config file not found: {p}")
        return p, _read_toml(p)

    own = root_p / CONFIG_FILE
    if own.is_file():
        return own, _read_toml(own)

    pyproject = root_p / "pyproject.toml"
    if pyproject.is_file():
        table = _read_toml(pyproject).get("tool", {}).get("qualitygate")
        if table is not None:
            return pyproject, table

    return None, {}


def load_config(root: str | Path = ".", path: str | Path | None = None) -> GateConfig:
    source, data = find_config(root, path)
    try:
        return GateConfig.model_validate(data)
    except ValidationError as e:
        errors = [f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ConfigError(
            f"invalid configuration in {source or 'defaults'}",
            {"errors": "; ".join(errors)},
        ) from e
