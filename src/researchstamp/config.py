"""
Runtime settings for researchstamp.

Settings are read from RESEARCHSTAMP_* environment variables. A .env file
in the working directory is loaded first through python-dotenv, so values
already present in the environment win over the file.
"""

import os
from dataclasses import dataclass, asdict
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from researchstamp.core.fingerprint import DEFAULT_MAX_FILE_BYTES
from researchstamp.core.record import DESCRIPTION_MAX, DESCRIPTION_MIN

ENV_PREFIX = "RESEARCHSTAMP_"


def _int_value(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{ENV_PREFIX}{name} must not be negative, got {value}")
    return value


def _float_value(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{ENV_PREFIX}{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """
    Configuration shared by the session, the pipeline and the CLI.

    Attributes:
        max_file_bytes: Size ceiling for hashed files.
        description_min: Minimum description length.
        description_max: Maximum description length.
        store: Location of the durable store (see storage.open_store).
        ledger_url: Ledger node URL; empty selects the local ledger.
        network: Ledger network name.
        identity: Address of the active identity, if configured.
        log_level: Logging level name used by the CLI.
        http_timeout: Per-request timeout for the HTTP ledger client.
    """

    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    description_min: int = DESCRIPTION_MIN
    description_max: int = DESCRIPTION_MAX
    store: str = "./researchstamp.db"
    ledger_url: str = ""
    network: str = "testnet"
    identity: Optional[str] = None
    log_level: str = "WARNING"
    http_timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.description_min > self.description_max:
            raise ValueError("description_min cannot exceed description_max")

    @classmethod
    def from_env(
        cls,
        env: Optional[Mapping[str, str]] = None,
        dotenv: bool = True,
    ) -> "Settings":
        """
        Build settings from the environment.

        Args:
            env: Mapping to read instead of os.environ.
            dotenv: Load a .env file into os.environ first. Ignored when
                env is given.

        Raises:
            ValueError: If a numeric variable does not parse.
        """
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ
        return cls(
            max_file_bytes=_int_value(env, "MAX_FILE_BYTES", DEFAULT_MAX_FILE_BYTES),
            description_min=_int_value(env, "DESCRIPTION_MIN", DESCRIPTION_MIN),
            description_max=_int_value(env, "DESCRIPTION_MAX", DESCRIPTION_MAX),
            store=env.get(ENV_PREFIX + "STORE") or "./researchstamp.db",
            ledger_url=env.get(ENV_PREFIX + "LEDGER_URL", ""),
            network=env.get(ENV_PREFIX + "NETWORK") or "testnet",
            identity=env.get(ENV_PREFIX + "IDENTITY") or None,
            log_level=(env.get(ENV_PREFIX + "LOG_LEVEL") or "WARNING").upper(),
            http_timeout=_float_value(env, "HTTP_TIMEOUT", 10.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
