"""
Runtime settings for import sessions.

Defaults reproduce the constants the import wizard has always used;
each can be overridden through a VERIFIED_IMPORT_* environment variable.
"""

import logging
import os
from dataclasses import asdict, dataclass
from typing import Any

from utils.retry import RetryPolicy

from .errors import LocalPreconditionError

logger = logging.getLogger(__name__)

ENV_PREFIX = "VERIFIED_IMPORT_"

CHUNK_SIZE = 5000
MAX_RETRIES = 2
RETRY_DELAY_SECONDS = 1.0
TRIAL_SAMPLE_SIZE = 5
ROWID_TOLERANCE = 5
READ_DELAY_SECONDS = 2.0
POLL_INTERVAL_SECONDS = 1.0
MAX_POLLS = 60


@dataclass
class ImportSettings:
    """
    Tunables for one import session

    Attributes:
        chunk_size: Rows per upload call
        max_retries: Retries per chunk after a transient failure
        retry_delay: Fixed delay between two attempts, in seconds
        trial_sample_size: Rows sent in the trial import
        rowid_tolerance: Maximum RowID offset the probe may resolve
        read_delay: Wait between the trial import and the read-back
        poll_interval: Seconds between two export-job status polls
        max_polls: Export-job polls before giving up
        truncation_threshold: Characters lost before truncation turns critical
        date_shift_threshold_days: Days of shift before date-shift turns critical
        state_dir: Directory of the RowID cursor store
        lease_ttl: Seconds a table lease stays valid
    """

    chunk_size: int = CHUNK_SIZE
    max_retries: int = MAX_RETRIES
    retry_delay: float = RETRY_DELAY_SECONDS
    trial_sample_size: int = TRIAL_SAMPLE_SIZE
    rowid_tolerance: int = ROWID_TOLERANCE
    read_delay: float = READ_DELAY_SECONDS
    poll_interval: float = POLL_INTERVAL_SECONDS
    max_polls: int = MAX_POLLS
    truncation_threshold: int = 10
    date_shift_threshold_days: int = 1
    state_dir: str = "./import_state"
    lease_ttl: int = 3600

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise LocalPreconditionError(f"chunk_size must be > 0, got {self.chunk_size}")
        if self.trial_sample_size < 0:
            raise LocalPreconditionError(
                f"trial_sample_size must be >= 0, got {self.trial_sample_size}"
            )
        if self.rowid_tolerance < 0:
            raise LocalPreconditionError(
                f"rowid_tolerance must be >= 0, got {self.rowid_tolerance}"
            )

    def retry_policy(self) -> RetryPolicy:
        """Fixed-delay policy shared by chunk uploads, probes and job polling."""
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.retry_delay,
            exponential_base=1.0,
            poll_interval=self.poll_interval,
            max_polls=self.max_polls,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "ImportSettings":
        """
        Build settings from VERIFIED_IMPORT_* environment variables

        Unknown variables are ignored; a malformed value falls back to the
        default with a warning.

        Args:
            environ: Mapping to read from (default: os.environ)
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}

        for name, default in asdict(cls()).items():
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            try:
                kwargs[name] = type(default)(raw)
            except ValueError:
                logger.warning(
                    f"Ignoring invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}"
                )

        return cls(**kwargs)
