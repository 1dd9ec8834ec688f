"""
Pcap Common module.

This module contains shared domain models, the filter model, error types
and the collaborator interfaces used across the pcap service components
(jobs, pdml, server, persistence).

The common module has no dependencies on other pcap_* modules, making it
a pure domain layer that can be imported by any component.
"""

from .backend import ExecutionBackend, JobHandle, Pageable, Storage
from .config import PcapSettings
from .errors import ErrorKind, PcapError
from .filter import FixedPcapFilter, QueryConfig, build_filter, build_query_config
from .models import (
    APIKey,
    AttributeDocument,
    AttributeNode,
    FixedPcapRequest,
    JobState,
    JobStatus,
    PcapStatus,
    User,
)
from .repository import UserRepository

__all__ = [
    "APIKey",
    "AttributeDocument",
    "AttributeNode",
    "ErrorKind",
    "ExecutionBackend",
    "FixedPcapFilter",
    "FixedPcapRequest",
    "JobHandle",
    "JobState",
    "JobStatus",
    "Pageable",
    "PcapError",
    "PcapSettings",
    "PcapStatus",
    "QueryConfig",
    "Storage",
    "User",
    "UserRepository",
    "build_filter",
    "build_query_config",
]
