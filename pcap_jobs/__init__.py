"""
Pcap Jobs module.

This module contains the job manager, which owns the per-user namespace of
query jobs, the projection of job status onto the public record, and the
single-host execution backend and file storage used when no cluster backend
is configured.
"""

from .local_backend import FilePageable, LocalQueryBackend, LocalQueryJob
from .manager import JobManager
from .status import to_pcap_status
from .storage import LocalFileStorage

__all__ = [
    "FilePageable",
    "JobManager",
    "LocalFileStorage",
    "LocalQueryBackend",
    "LocalQueryJob",
    "to_pcap_status",
]
