"""
Filter model for fixed pcap queries.

A fixed request is turned into two things: the predicate handed to the
execution backend (only the match fields the caller actually set), and the
job configuration (paths, time window, parallelism) where unset values fall
back to the process-wide settings.
"""

import time
from dataclasses import dataclass

from .config import PcapSettings
from .errors import ErrorKind, PcapError
from .models import FixedPcapRequest

NANOS_PER_MILLI = 1_000_000

# Predicate field names understood by the execution backend, in the order they
# appear in the conjunction.
SRC_ADDR = "ip_src_addr"
DST_ADDR = "ip_dst_addr"
SRC_PORT = "ip_src_port"
DST_PORT = "ip_dst_port"
PROTOCOL = "protocol"
INCLUDES_REVERSE_TRAFFIC = "include_reverse_traffic"
PACKET_FILTER = "packet_filter"


@dataclass(frozen=True)
class FixedPcapFilter:
    """
    Conjunction of literal field matches plus an optional raw expression.

    An empty filter matches every packet.
    """

    terms: tuple[tuple[str, str], ...] = ()
    expression: str | None = None

    @property
    def is_match_all(self) -> bool:
        return not self.terms and self.expression is None

    def to_fields(self) -> dict[str, str]:
        """Flatten the predicate into the field map the backend consumes."""
        fields = dict(self.terms)
        if self.expression is not None:
            fields[PACKET_FILTER] = self.expression
        return fields


@dataclass(frozen=True)
class QueryConfig:
    """Everything besides the predicate that a backend needs to run a query."""

    base_path: str
    base_interim_result_path: str
    final_output_path: str
    start_time_ns: int
    end_time_ns: int
    num_reducers: int
    records_per_file: int
    owner: str | None = None


def _as_field_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_filter(request: FixedPcapRequest) -> FixedPcapFilter:
    """
    Build the query predicate from the fields the caller set.

    No field is defaulted to a match value: an unset field is absent from the
    conjunction, and an empty request matches everything.
    """
    candidates = [
        (SRC_ADDR, request.ip_src_addr),
        (DST_ADDR, request.ip_dst_addr),
        (SRC_PORT, request.ip_src_port),
        (DST_PORT, request.ip_dst_port),
        (PROTOCOL, request.protocol),
        (INCLUDES_REVERSE_TRAFFIC, request.include_reverse),
    ]
    terms = tuple(
        (name, _as_field_value(value)) for name, value in candidates if value is not None
    )
    return FixedPcapFilter(terms=terms, expression=request.packet_filter)


def _validate_port(name: str, port: int | None) -> None:
    if port is not None and not 0 <= port <= 65535:
        raise PcapError(ErrorKind.VALIDATION, f"{name} out of range: {port}")


def build_query_config(
    request: FixedPcapRequest,
    settings: PcapSettings,
    owner: str | None = None,
    now_ms: int | None = None,
) -> QueryConfig:
    """
    Resolve request-level defaults into a job configuration.

    Args:
        request: The caller's request
        settings: Process-wide defaults for paths, page size and reducers
        owner: User submitting the query
        now_ms: Submission time in milliseconds (defaults to the wall clock)

    Returns:
        QueryConfig with times converted from milliseconds to nanoseconds

    Raises:
        PcapError: VALIDATION if the window is inverted, a port is out of range
                   or the reducer count is not positive
    """
    _validate_port("ipSrcPort", request.ip_src_port)
    _validate_port("ipDstPort", request.ip_dst_port)

    start_ms = request.start_time_ms if request.start_time_ms is not None else 0
    if request.end_time_ms is not None:
        end_ms = request.end_time_ms
    else:
        end_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    if start_ms < 0 or end_ms < start_ms:
        raise PcapError(
            ErrorKind.VALIDATION,
            f"Invalid time window: start={start_ms}ms end={end_ms}ms",
        )

    num_reducers = (
        request.num_reducers
        if request.num_reducers is not None
        else settings.num_reducers
    )
    if num_reducers < 1:
        raise PcapError(
            ErrorKind.VALIDATION, f"numReducers must be positive: {num_reducers}"
        )

    return QueryConfig(
        base_path=request.base_path or settings.base_path,
        base_interim_result_path=(
            request.base_interim_result_path or settings.base_interim_result_path
        ),
        final_output_path=request.final_output_path or settings.final_output_path,
        start_time_ns=start_ms * NANOS_PER_MILLI,
        end_time_ns=end_ms * NANOS_PER_MILLI,
        num_reducers=num_reducers,
        records_per_file=settings.page_size,
        owner=owner,
    )
