"""Canonical models shared by the client factory, the plugins and the report.

Design note:
- Wire models mirror the etcd v3 JSON gateway. int64/uint64 fields arrive as strings there;
  pydantic's lax mode coerces them back to ints.
- Wire models allow extra fields so newer server versions do not break parsing.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BaseModelAllowExtra(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class BaseModelStrict(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ResponseHeader(BaseModelAllowExtra):
    cluster_id: int = 0
    member_id: int = 0
    revision: int = 0
    raft_term: int = 0


class Member(BaseModelAllowExtra):
    id: int = Field(default=0, alias="ID")
    name: str = ""
    peer_urls: List[str] = Field(default_factory=list, alias="peerURLs")
    client_urls: List[str] = Field(default_factory=list, alias="clientURLs")
    is_learner: bool = Field(default=False, alias="isLearner")


class MemberListResponse(BaseModelAllowExtra):
    header: ResponseHeader = Field(default_factory=ResponseHeader)
    members: List[Member] = Field(default_factory=list)


class StatusResponse(BaseModelAllowExtra):
    header: ResponseHeader = Field(default_factory=ResponseHeader)
    version: str = ""
    db_size: int = Field(default=0, alias="dbSize")
    db_size_in_use: int = Field(default=0, alias="dbSizeInUse")
    leader: int = 0
    raft_index: int = Field(default=0, alias="raftIndex")
    raft_term: int = Field(default=0, alias="raftTerm")
    raft_applied_index: int = Field(default=0, alias="raftAppliedIndex")
    errors: List[str] = Field(default_factory=list)
    is_learner: bool = Field(default=False, alias="isLearner")


class KeyValue(BaseModelAllowExtra):
    key: str = ""  # base64 on the wire
    create_revision: int = 0
    mod_revision: int = 0
    version: int = 0
    value: str = ""  # base64 on the wire
    lease: int = 0


class RangeResponse(BaseModelAllowExtra):
    header: ResponseHeader = Field(default_factory=ResponseHeader)
    kvs: List[KeyValue] = Field(default_factory=list)
    more: bool = False
    count: int = 0


# -----------------------------------------------------------------------------
# Plugin results
# -----------------------------------------------------------------------------


class EndpointMembers(BaseModelStrict):
    endpoint: str
    members: List[Member] = Field(default_factory=list)
    error: Optional[str] = None


class MembershipCheckResult(BaseModelStrict):
    name: str
    summary: List[str] = Field(default_factory=list)
    member_lists: List[EndpointMembers] = Field(default_factory=list)


class EndpointStatusEntry(BaseModelStrict):
    endpoint: str
    status: Optional[StatusResponse] = None
    error: Optional[str] = None


class EndpointStatusCheckResult(BaseModelStrict):
    name: str
    summary: List[str] = Field(default_factory=list)
    statuses: List[EndpointStatusEntry] = Field(default_factory=list)


class ReadEntry(BaseModelStrict):
    endpoint: str
    took_ms: Optional[float] = None
    revision: Optional[int] = None
    count: Optional[int] = None
    error: Optional[str] = None


class ReadCheckResult(BaseModelStrict):
    name: str
    serializable: bool
    key: str
    summary: List[str] = Field(default_factory=list)
    reads: List[ReadEntry] = Field(default_factory=list)


class EndpointMetrics(BaseModelStrict):
    endpoint: str
    metrics: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class MetricsCheckResult(BaseModelStrict):
    name: str
    summary: List[str] = Field(default_factory=list)
    endpoint_metrics: List[EndpointMetrics] = Field(default_factory=list)


class PluginFailure(BaseModelStrict):
    """Recorded in place of a result when a plugin raised instead of returning."""

    name: str
    error: str


# -----------------------------------------------------------------------------
# Report
# -----------------------------------------------------------------------------


class DiagnosisReport(BaseModelStrict):
    input: Optional[Dict[str, Any]] = None
    results: List[Any] = Field(default_factory=list)
