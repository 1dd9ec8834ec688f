"""
Process-wide configuration for the pcap service.

Every setting is read from an environment variable and falls back to a
default. Command-line entry points may override individual values.

Environment Variables:
    PCAP_BASE_PATH: Root of the capture store (default: /apps/pcap/input)
    PCAP_BASE_INTERIM_RESULT_PATH: Scratch space for running jobs (default: /apps/pcap/interim)
    PCAP_FINAL_OUTPUT_PATH: Where result pages are written (default: /apps/pcap/output)
    PCAP_PAGE_SIZE: Packets per result page (default: 10)
    PCAP_NUM_REDUCERS: Default job parallelism (default: 10)
    PCAP_PDML_SCRIPT_PATH: Decoder executable (default: /usr/local/bin/pcap_to_pdml.sh)
    PCAP_QUERY_COMMAND: Query executable used by the local backend (default: pcap-query)
    PCAP_DB_PATH: SQLite database holding users and API keys (default: pcap_users.db)
    PCAP_LOG_LEVEL: Logging level of the server (default: INFO)
"""

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def get_env_str(name: str, default: str) -> str:
    """Read a string setting, treating an empty value as unset."""
    value = os.environ.get(name)
    return value if value else default


def get_env_int(name: str, default: int) -> int:
    """
    Read a positive integer setting.

    Invalid or non-positive values are logged and replaced by the default.
    """
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"Invalid {name}={value}, using default {default}")
        return default
    return value


@dataclass(frozen=True)
class PcapSettings:
    base_path: str = "/apps/pcap/input"
    base_interim_result_path: str = "/apps/pcap/interim"
    final_output_path: str = "/apps/pcap/output"
    page_size: int = 10
    num_reducers: int = 10
    pdml_script_path: str = "/usr/local/bin/pcap_to_pdml.sh"
    query_command: str = "pcap-query"
    db_path: str = "pcap_users.db"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "PcapSettings":
        """Build settings from the environment."""
        defaults = cls()
        return cls(
            base_path=get_env_str("PCAP_BASE_PATH", defaults.base_path),
            base_interim_result_path=get_env_str(
                "PCAP_BASE_INTERIM_RESULT_PATH", defaults.base_interim_result_path
            ),
            final_output_path=get_env_str(
                "PCAP_FINAL_OUTPUT_PATH", defaults.final_output_path
            ),
            page_size=get_env_int("PCAP_PAGE_SIZE", defaults.page_size),
            num_reducers=get_env_int("PCAP_NUM_REDUCERS", defaults.num_reducers),
            pdml_script_path=get_env_str(
                "PCAP_PDML_SCRIPT_PATH", defaults.pdml_script_path
            ),
            query_command=get_env_str("PCAP_QUERY_COMMAND", defaults.query_command),
            db_path=get_env_str("PCAP_DB_PATH", defaults.db_path),
            log_level=get_env_str("PCAP_LOG_LEVEL", defaults.log_level).upper(),
        )
