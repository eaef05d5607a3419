"""
Configuration Management for git-committer

Provides validated configuration with sensible defaults.
Loaded from the flat JSON document used by the command-line tool,
with environment variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Degenerate counts are clamped, not rejected
"""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from committer.core.types import Result, Ok, Err, Identity, Timestamp
from committer.core.errors import SetupError
from committer.core import constants as C


@dataclass(frozen=True)
class GeneratorConfig:
    """Date range and throughput knobs."""

    start_date: date = field(default_factory=date.today)
    end_date: date = field(
        default_factory=lambda: date.today() + timedelta(days=C.DEFAULT_DATE_SPAN_DAYS)
    )
    commit_interval_seconds: int = 0  # 0 = disabled
    max_commits_per_day: int = C.DEFAULT_MAX_COMMITS_PER_DAY
    batch_size: int = C.DEFAULT_BATCH_SIZE
    max_workers: int = 0  # 0 = auto-detect
    seed: Optional[int] = None

    @property
    def effective_batch_size(self) -> int:
        return max(1, self.batch_size)

    @property
    def effective_workers(self) -> int:
        """Configured worker count, or 3/4 of the CPU cores clamped to [2, 12]."""
        if self.max_workers > 0:
            return self.max_workers
        cores = os.cpu_count() or 4
        return min(C.MAX_AUTO_WORKERS, max(C.MIN_AUTO_WORKERS, cores * 3 // 4))


@dataclass(frozen=True)
class IdentityConfig:
    """Author/committer identity for every generated entry."""

    name: str = ""
    email: str = ""

    @property
    def is_set(self) -> bool:
        return bool(self.name.strip()) and bool(self.email.strip())

    def to_identity(self) -> Identity:
        return Identity(name=self.name, email=self.email)


@dataclass(frozen=True)
class RepositoryConfig:
    """Local repository and remote coordinates."""

    path: Path = field(default_factory=lambda: Path("."))
    repo_name: str = "git-committer"
    github_username: str = ""
    remote: str = C.DEFAULT_REMOTE
    branch: Optional[str] = None  # None = detect from HEAD

    @property
    def ref_name(self) -> Optional[str]:
        return f"refs/heads/{self.branch}" if self.branch else None


@dataclass(frozen=True)
class PublishConfig:
    """Background publish configuration."""

    push_queue_size: int = C.DEFAULT_PUSH_QUEUE_SIZE
    enabled: bool = True


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = False


@dataclass(frozen=True)
class CommitterConfig:
    """Root configuration."""

    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    repository: RepositoryConfig = field(default_factory=RepositoryConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_dict(cls, doc: dict[str, Any]) -> Result[CommitterConfig, SetupError]:
        """
        Build configuration from the flat committer-config.json document.

        Keys absent from the document keep their defaults.
        """
        try:
            defaults = GeneratorConfig()
            generator = GeneratorConfig(
                start_date=_parse_date(doc.get("start_date"), defaults.start_date),
                end_date=_parse_date(doc.get("end_date"), defaults.end_date),
                commit_interval_seconds=int(doc.get("commit_interval_seconds", 0)),
                max_commits_per_day=int(
                    doc.get("max_commits_per_day", C.DEFAULT_MAX_COMMITS_PER_DAY)
                ),
                batch_size=int(doc.get("batch_size", C.DEFAULT_BATCH_SIZE)),
                max_workers=int(doc.get("max_workers", 0)),
                seed=_optional_int(doc.get("seed")),
            )
            identity = IdentityConfig(
                name=_optional_str(doc.get("git_user_name")),
                email=_optional_str(doc.get("git_user_email")),
            )
            repository = RepositoryConfig(
                path=Path(doc.get("repo_path", ".")),
                repo_name=str(doc.get("repo_name", "git-committer")),
                github_username=_optional_str(doc.get("github_username")),
                remote=str(doc.get("remote", C.DEFAULT_REMOTE)),
                branch=doc.get("branch") or None,
            )
            publish = PublishConfig(
                push_queue_size=int(doc.get("push_queue_size", C.DEFAULT_PUSH_QUEUE_SIZE)),
                enabled=_parse_bool(doc.get("push_enabled"), True),
            )
            observability = ObservabilityConfig(
                log_level=str(doc.get("log_level", "INFO")).upper(),
                log_json=_parse_bool(doc.get("log_json"), False),
            )
        except (ValueError, TypeError) as e:
            return Err(SetupError.invalid_configuration(str(e)))

        return Ok(cls(
            generator=generator,
            identity=identity,
            repository=repository,
            publish=publish,
            observability=observability,
        ))

    @classmethod
    def from_file(cls, path: Path) -> Result[CommitterConfig, SetupError]:
        """Load configuration from a JSON file."""
        if not path.exists():
            return Err(SetupError.config_not_found(str(path)))
        try:
            doc = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            return Err(SetupError.invalid_configuration(f"{path}: {e}"))
        if not isinstance(doc, dict):
            return Err(SetupError.invalid_configuration(f"{path}: expected a JSON object"))
        return cls.from_dict(doc)

    @staticmethod
    def default_document() -> dict[str, Any]:
        """Starter document written when no configuration exists."""
        today = date.today()
        return {
            "start_date": today.isoformat(),
            "end_date": (today + timedelta(days=C.DEFAULT_DATE_SPAN_DAYS)).isoformat(),
            "repo_name": "git-committer",
            "github_username": "your-username",
            "git_user_name": "Your Name",
            "git_user_email": "your.email@example.com",
            "commit_interval_seconds": 0,
            "batch_size": C.DEFAULT_BATCH_SIZE,
            "max_commits_per_day": C.DEFAULT_MAX_COMMITS_PER_DAY,
            "max_workers": 8,
            "push_queue_size": C.DEFAULT_PUSH_QUEUE_SIZE,
        }

    @classmethod
    def write_default(cls, path: Path) -> None:
        path.write_text(json.dumps(cls.default_document(), indent=2) + "\n", encoding="utf-8")

    def with_env_overrides(self) -> Result[CommitterConfig, SetupError]:
        """
        Apply environment variable overrides.

        Environment variables are prefixed with COMMITTER_.
        Example: COMMITTER_BATCH_SIZE, COMMITTER_PUSH_QUEUE_SIZE
        """
        env = lambda key: os.getenv(C.ENV_PREFIX + key)  # noqa: E731
        try:
            generator = self.generator
            if env("BATCH_SIZE"):
                generator = replace(generator, batch_size=int(env("BATCH_SIZE")))
            if env("MAX_WORKERS"):
                generator = replace(generator, max_workers=int(env("MAX_WORKERS")))
            if env("SEED"):
                generator = replace(generator, seed=int(env("SEED")))

            publish = self.publish
            if env("PUSH_QUEUE_SIZE"):
                publish = replace(publish, push_queue_size=int(env("PUSH_QUEUE_SIZE")))
            if env("PUSH_ENABLED"):
                publish = replace(publish, enabled=_parse_bool(env("PUSH_ENABLED"), True))

            observability = self.observability
            if env("LOG_LEVEL"):
                observability = replace(observability, log_level=env("LOG_LEVEL").upper())
            if env("LOG_JSON"):
                observability = replace(observability, log_json=_parse_bool(env("LOG_JSON"), False))
        except ValueError as e:
            return Err(SetupError.invalid_configuration(f"environment override: {e}"))

        return Ok(replace(
            self,
            generator=generator,
            publish=publish,
            observability=observability,
        ))

    def validate(self) -> Result[None, SetupError]:
        """Validate configuration invariants."""
        if not self.identity.is_set:
            return Err(SetupError.identity_missing())
        if self.generator.commit_interval_seconds < 0:
            return Err(SetupError.invalid_configuration("commit_interval_seconds cannot be negative"))
        if self.publish.push_queue_size < 1:
            return Err(SetupError.invalid_configuration("push_queue_size must be >= 1"))
        if self.generator.max_workers < 0:
            return Err(SetupError.invalid_configuration("max_workers cannot be negative"))
        return Ok(None)


# =============================================================================
# RUN SCHEDULE
# =============================================================================
@dataclass(frozen=True)
class RunSchedule:
    """
    Run-wide distribution of entries over the date range.

    Entry i (1-based) belongs to day floor((i-1) / commits_per_day)
    counted from run_start.
    """

    run_start: Timestamp
    total_days: int
    commits_per_day: int
    total_commits: int
    total_seconds: int = 0

    def __post_init__(self) -> None:
        # Degenerate values clamp to the smallest valid schedule
        object.__setattr__(self, "total_days", max(1, self.total_days))
        object.__setattr__(self, "commits_per_day", max(1, self.commits_per_day))
        object.__setattr__(self, "total_commits", max(1, self.total_commits))

    @classmethod
    def from_config(cls, generator: GeneratorConfig) -> RunSchedule:
        start = datetime.combine(generator.start_date, time.min, tzinfo=timezone.utc)
        end = datetime.combine(generator.end_date, time.min, tzinfo=timezone.utc)
        run_start = Timestamp.from_datetime(start)
        run_end = Timestamp.from_datetime(end) + (C.SECONDS_PER_DAY - 1)

        total_seconds = run_end - run_start
        total_days = max(1, math.ceil(total_seconds / C.SECONDS_PER_DAY))

        interval = generator.commit_interval_seconds
        if interval > 0:
            total_commits = max(0, total_seconds) // interval
            commits_per_day = math.ceil(total_commits / total_days)
        else:
            commits_per_day = generator.max_commits_per_day
            total_commits = total_days * commits_per_day

        return cls(
            run_start=run_start,
            total_days=total_days,
            commits_per_day=commits_per_day,
            total_commits=total_commits,
            total_seconds=total_seconds,
        )

    def day_index(self, index: int) -> int:
        return (index - 1) // self.commits_per_day

    def day_start(self, index: int) -> Timestamp:
        return self.run_start + self.day_index(index) * C.SECONDS_PER_DAY


# =============================================================================
# HELPERS
# =============================================================================
def _parse_date(value: Any, default: date) -> date:
    if value is None or value == "":
        return default
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _optional_str(value: Any) -> str:
    # jq-era documents use the literal "null" for unset fields
    if value is None or value == "null":
        return ""
    return str(value)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"expected a boolean, got {value!r}")
