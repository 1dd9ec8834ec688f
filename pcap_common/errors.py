"""
Error types for the pcap service.

Unknown jobs, missing pages and jobs that are not finished yet are modelled
as None results by the callers. Every other failure is raised as a single
PcapError carrying its kind and the original message, and the transport
decides how to render it.
"""

import enum


class ErrorKind(str, enum.Enum):
    VALIDATION = "VALIDATION"  # request or page number out of range
    SUBMISSION = "SUBMISSION"  # backend rejected job creation
    LOOKUP = "LOOKUP"  # backend failed while querying or killing a job
    EXECUTION = "EXECUTION"  # decoder failed to start, to stream, or exited non-zero
    PARSE = "PARSE"  # decoder output is malformed


class PcapError(Exception):
    """A structured failure with its kind and the underlying message."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"PcapError({self.kind.value}, {self.message!r})"
