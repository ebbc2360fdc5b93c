from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field

from .builder import IMPLICIT_JOB, IMPLICIT_STAGE
from .templates import DEFAULT_MAX_DEPTH

ENV_PREFIX = "PIPELINT_"


class LintSettings(BaseModel):
    max_template_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1)
    strict: bool = False  # warnings fail the run
    workers: int = Field(default=1, ge=1)
    implicit_stage_name: str = IMPLICIT_STAGE
    implicit_job_name: str = IMPLICIT_JOB

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "LintSettings":
        """Settings from PIPELINT_* variables; keyword overrides win when not None."""
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        if f"{ENV_PREFIX}MAX_TEMPLATE_DEPTH" in env:
            values["max_template_depth"] = int(env[f"{ENV_PREFIX}MAX_TEMPLATE_DEPTH"])
        if f"{ENV_PREFIX}STRICT" in env:
            values["strict"] = env[f"{ENV_PREFIX}STRICT"].strip().lower() in ("1", "true", "yes", "on")
        if f"{ENV_PREFIX}WORKERS" in env:
            values["workers"] = int(env[f"{ENV_PREFIX}WORKERS"])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
