from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field
from backoffice.models.shared.enums import IssueSeverity, IntegrityCheck, FixType

class IntegrityIssue(BaseModel):
    type: IssueSeverity
    check: IntegrityCheck
    message: str
    transaction_id: Optional[int] = None
    entity_id: Optional[int] = None
    data: Optional[Dict[str, Any]] = None

class IntegrityReport(BaseModel):
    valid: bool
    issues: List[IntegrityIssue] = Field(default_factory=list)
    summary: Dict[str, int] = Field(default_factory=dict)  # issue count per check

    @property
    def errors(self) -> List[IntegrityIssue]:
        return [i for i in self.issues if i.type == IssueSeverity.ERROR]

    @property
    def warnings(self) -> List[IntegrityIssue]:
        return [i for i in self.issues if i.type == IssueSeverity.WARNING]

    def by_check(self, check: IntegrityCheck) -> List[IntegrityIssue]:
        return [i for i in self.issues if i.check == check]

class RepairCount(BaseModel):
    """Outcome of a single repair category"""
    affected: int = 0
    failed: int = 0

class BackfillResult(BaseModel):
    updated: int = 0
    errors: int = 0
    failed_unit_ids: List[int] = Field(default_factory=list)

class FixRecord(BaseModel):
    type: FixType
    description: str
    affected_count: int
    failed_count: int = 0
    destructive: bool = False

class ConsistencyReport(BaseModel):
    total_transactions: int = 0
    valid_transactions: int = 0
    orphaned_transactions: int = 0
    zero_total_transactions: int = 0
    missing_units_transactions: int = 0
    fixes: List[FixRecord] = Field(default_factory=list)
