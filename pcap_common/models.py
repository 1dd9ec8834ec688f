"""
Data models for pcap query jobs.

These models represent the domain objects used throughout the application,
independent of the execution backend, the storage and the transport.
"""

import enum
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .errors import ErrorKind, PcapError


class JobState(str, enum.Enum):
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    KILLED = "KILLED"

    @property
    def is_terminal(self) -> bool:
        return self is not JobState.RUNNING


@dataclass(frozen=True)
class JobStatus:
    """
    Live status of a job as reported by the execution backend.

    Jobs progress through states: RUNNING -> SUCCEEDED | FAILED | KILLED
    """

    job_id: str
    state: JobState
    description: str = ""
    percent_complete: float = 0.0


@dataclass
class PcapStatus:
    """
    Public projection of a job's status.

    page_total is only set once the job has finished successfully.
    """

    job_id: str
    job_status: str
    description: str = ""
    percent_complete: float = 0.0
    page_total: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert status to the camelCase wire format (for API responses)."""
        result: dict[str, Any] = {
            "jobId": self.job_id,
            "jobStatus": self.job_status,
            "description": self.description,
            "percentComplete": self.percent_complete,
        }
        if self.page_total is not None:
            result["pageTotal"] = self.page_total
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PcapStatus":
        """Create status from the wire format."""
        return cls(
            job_id=data["jobId"],
            job_status=data["jobStatus"],
            description=data.get("description", ""),
            percent_complete=data.get("percentComplete", 0.0),
            page_total=data.get("pageTotal"),
        )


# Wire key -> (attribute name, converter)
_REQUEST_FIELDS: dict[str, tuple[str, type]] = {
    "basePath": ("base_path", str),
    "baseInterimResultPath": ("base_interim_result_path", str),
    "finalOutputPath": ("final_output_path", str),
    "startTimeMs": ("start_time_ms", int),
    "endTimeMs": ("end_time_ms", int),
    "numReducers": ("num_reducers", int),
    "ipSrcAddr": ("ip_src_addr", str),
    "ipDstAddr": ("ip_dst_addr", str),
    "ipSrcPort": ("ip_src_port", int),
    "ipDstPort": ("ip_dst_port", int),
    "protocol": ("protocol", str),
    "includeReverse": ("include_reverse", bool),
    "packetFilter": ("packet_filter", str),
}


@dataclass
class FixedPcapRequest:
    """
    A query expressed as literal field values.

    Every field is optional. Storage paths and the reducer count fall back to
    configuration, the time window to [0, now). Match fields that are left
    unset are simply absent from the resulting filter.
    """

    base_path: str | None = None
    base_interim_result_path: str | None = None
    final_output_path: str | None = None
    start_time_ms: int | None = None
    end_time_ms: int | None = None
    num_reducers: int | None = None
    ip_src_addr: str | None = None
    ip_dst_addr: str | None = None
    ip_src_port: int | None = None
    ip_dst_port: int | None = None
    protocol: str | None = None
    include_reverse: bool | None = None
    packet_filter: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert request to the wire format, leaving out unset fields."""
        result: dict[str, Any] = {}
        for wire_key, (attr, _) in _REQUEST_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                result[wire_key] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FixedPcapRequest":
        """
        Create a request from the wire format.

        Raises:
            PcapError: VALIDATION if a key is unknown or a value has the wrong type
        """
        unknown = set(data) - set(_REQUEST_FIELDS)
        if unknown:
            raise PcapError(
                ErrorKind.VALIDATION, f"Unknown request fields: {sorted(unknown)}"
            )

        kwargs: dict[str, Any] = {}
        for wire_key, (attr, converter) in _REQUEST_FIELDS.items():
            value = data.get(wire_key)
            if value is None:
                continue
            if converter is bool:
                if not isinstance(value, bool):
                    raise PcapError(
                        ErrorKind.VALIDATION, f"{wire_key} must be a boolean"
                    )
            elif converter is int:
                # bool is an int subclass, reject it explicitly
                if isinstance(value, bool) or not isinstance(value, (int, str)):
                    raise PcapError(
                        ErrorKind.VALIDATION, f"{wire_key} must be an integer"
                    )
                try:
                    value = int(value)
                except ValueError as e:
                    raise PcapError(
                        ErrorKind.VALIDATION, f"{wire_key} must be an integer"
                    ) from e
            elif not isinstance(value, str):
                raise PcapError(ErrorKind.VALIDATION, f"{wire_key} must be a string")
            kwargs[attr] = value
        return cls(**kwargs)


@dataclass
class AttributeNode:
    """
    One element of a decoded document.

    A node holds its attributes in source order and an ordered list of child
    nodes of the same type. Depth is unbounded.
    """

    name: str
    attributes: dict[str, str] = field(default_factory=dict)
    children: list["AttributeNode"] = field(default_factory=list)

    def to_dict(self, children_key: str = "fields") -> dict[str, Any]:
        """Attributes in source order, children under children_key if any."""
        result: dict[str, Any] = dict(self.attributes)
        pending = [(self, result)]
        while pending:
            node, node_dict = pending.pop()
            if not node.children:
                continue
            child_dicts = []
            for child in node.children:
                child_dict: dict[str, Any] = dict(child.attributes)
                child_dicts.append(child_dict)
                pending.append((child, child_dict))
            node_dict[children_key] = child_dicts
        return result


@dataclass
class AttributeDocument:
    """
    A decoded result page: the root element plus accessors for its metadata.

    root mirrors the decoder output exactly; only to_dict() maps it onto the
    public wire shape.
    """

    root: AttributeNode

    @property
    def version(self) -> str | None:
        return self.root.attributes.get("version")

    @property
    def creator(self) -> str | None:
        return self.root.attributes.get("creator")

    @property
    def time(self) -> str | None:
        return self.root.attributes.get("time")

    @property
    def capture_file(self) -> str | None:
        return self.root.attributes.get("capture_file")

    @property
    def packets(self) -> list[AttributeNode]:
        return self.root.children

    def to_dict(self) -> dict[str, Any]:
        """Convert document to the wire format (for API responses)."""
        packets = []
        for packet in self.packets:
            protos = []
            for proto in packet.children:
                proto_dict: dict[str, Any] = dict(proto.attributes)
                proto_dict["fields"] = [f.to_dict("fields") for f in proto.children]
                protos.append(proto_dict)
            packets.append({"protos": protos})
        return {
            "version": self.version,
            "creator": self.creator,
            "time": self.time,
            "captureFile": self.capture_file,
            "packets": packets,
        }


@dataclass
class User:
    """
    Represents a user account of the pcap service.

    The user's name is the owner key of every job the user submits.
    """

    id: str  # UUID
    name: str  # Unique, doubles as the job owner
    created_at: datetime
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert user to dictionary format (for API responses)."""
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
            "is_active": self.is_active,
        }


@dataclass
class APIKey:
    """
    Represents an API key for authentication.

    API keys are hashed before storage (SHA-256). The plaintext key is only
    shown once during creation and must be saved by the user.
    """

    id: str  # UUID (internal ID, not the actual key)
    user_id: str
    key_hash: str
    name: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_used_at: datetime | None = None
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert API key to dictionary format (for API responses)."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
            "last_used_at": self.last_used_at.isoformat()
            if self.last_used_at
            else None,
            "is_active": self.is_active,
        }
