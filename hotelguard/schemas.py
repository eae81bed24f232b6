# hotelguard/schemas.py
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RiskLevel(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class FaultCategory(str, Enum):
    HYGIENE = "Hygiene"
    EQUIPMENT = "Equipment"
    INFRASTRUCTURE = "Infrastructure"
    CROSS_CONTAMINATION = "Cross-Contamination"
    STORAGE = "Storage"


class RecordStatus(str, Enum):
    OPEN = "Open"
    RESOLVED = "Resolved"
    ESCALATED = "Escalated"


class HistoryAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    STATUS_CHANGE = "status_change"


class CamelModel(BaseModel):
    """Python attributes in snake_case, JSON keys in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class InspectionRecord(CamelModel):
    id: str
    timestamp: str
    inspection_date: str
    auditor_name: str
    property_name: str
    location: str
    photo_url: str = ""
    risk_level: RiskLevel
    category: FaultCategory
    fault_description: str
    remediation_steps: List[str] = Field(default_factory=list)
    status: RecordStatus = RecordStatus.OPEN


class InspectionDraft(CamelModel):
    """Payload of the capture flow before the id and creation markers are assigned."""
    id: Optional[str] = None
    timestamp: Optional[str] = None
    inspection_date: Optional[str] = None
    auditor_name: str
    property_name: str
    location: str
    photo_url: str = ""
    risk_level: RiskLevel
    category: FaultCategory
    fault_description: str
    remediation_steps: List[str] = Field(default_factory=list)
    status: RecordStatus = RecordStatus.OPEN


class Change(CamelModel):
    op: Literal["added", "removed", "modified", "moved"]
    path: List[Any] = Field(default_factory=list)
    old: Optional[Any] = None
    new: Optional[Any] = None
    from_index: Optional[int] = None
    to_index: Optional[int] = None


class Diff(CamelModel):
    changes: List[Change] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.changes


class AuditHistoryEntry(CamelModel):
    id: str
    record_id: str
    timestamp: str
    user_id: str
    action: HistoryAction
    diff: Optional[Diff] = None
    snapshot: Dict[str, Any]
    snapshot_hash: str


class SignatureData(CamelModel):
    id: str
    record_id: str
    signature_base64: str
    timestamp: str
    pdf_hash: Optional[str] = None
    auditor_name: Optional[str] = None


class SignatureIn(CamelModel):
    id: Optional[str] = None
    signature_base64: str
    timestamp: Optional[str] = None
    pdf_hash: Optional[str] = None
    auditor_name: Optional[str] = None


class StatusUpdate(CamelModel):
    status: RecordStatus


class PhotoAnalysis(CamelModel):
    risk_level: RiskLevel
    category: FaultCategory
    fault_description: str
    remediation_steps: List[str] = Field(default_factory=list)


class PhotoIn(CamelModel):
    base64_image: str


class TrainingModule(CamelModel):
    id: str
    title: str
    category: FaultCategory
    content: str
    last_updated: str
    related_incidents_count: int
    priority: Literal["Urgent", "Routine"]


class TrainingIn(CamelModel):
    property_name: str


class ChatMessage(CamelModel):
    role: Literal["user", "assistant"]
    content: str


class QueryIn(CamelModel):
    question: str


class AuditStats(CamelModel):
    total_inspections: int
    pass_rate: float
    high_risk_count: int
    resolved_count: int


class CategoryBreakdown(CamelModel):
    name: str
    value: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0


class NameIn(CamelModel):
    name: str
