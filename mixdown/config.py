from __future__ import annotations

import logging
import os
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidConfigError

_LOGGER = logging.getLogger("mixdown.config")

BackendName = Literal["cpu", "gpu"]

DEFAULT_SAMPLE_RATE = 44_100
DEFAULT_CHUNK_SIZE = 65_536
DEFAULT_WORKGROUP_SIZE = 256
# WebGPU guarantees at least this many workgroups per dispatch dimension.
DEFAULT_MAX_WORKGROUPS = 65_535

_ENV_FIELDS: Mapping[str, str] = {
    "MIXDOWN_BACKEND": "backend",
    "MIXDOWN_SAMPLE_RATE": "sample_rate",
    "MIXDOWN_CPU_WORKERS": "cpu_workers",
    "MIXDOWN_WORKGROUP_SIZE": "workgroup_size",
}


class MixerConfig(BaseModel):
    """Settings for one combiner instance.

    `backend` picks the mixing strategy once, at construction. The GPU knobs
    are ignored by the CPU reducer and vice versa.
    """

    backend: BackendName = "cpu"
    sample_rate: int = Field(DEFAULT_SAMPLE_RATE, gt=0)

    cpu_workers: int | None = Field(None, gt=0)
    cpu_chunk_size: int = Field(DEFAULT_CHUNK_SIZE, gt=0)
    decode_workers: int | None = Field(None, gt=0)

    workgroup_size: int = Field(DEFAULT_WORKGROUP_SIZE, gt=0)
    max_workgroups_per_dimension: int = Field(DEFAULT_MAX_WORKGROUPS, gt=0)
    readback_timeout: float | None = Field(None, gt=0)
    poll_interval: float = Field(0.001, ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def build(cls, **values: Any) -> "MixerConfig":
        try:
            return cls(**values)
        except ValidationError as exc:
            raise InvalidConfigError(str(exc)) from exc

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> "MixerConfig":
        source = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for env_name, field_name in _ENV_FIELDS.items():
            raw = source.get(env_name)
            if raw is None or not raw.strip():
                continue
            values[field_name] = raw.strip().lower() if field_name == "backend" else raw.strip()
        if values:
            _LOGGER.debug("Config values from environment: %s", values)
        values.update(overrides)
        return cls.build(**values)
