from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from . import dns_utils


class Model(BaseModel):
    """Immutable model serialised with camelCase keys (``overallScore``)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class OverallStatus(str, Enum):
    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"


class CheckType(str, Enum):
    IP = "ip"
    DOMAIN = "domain"


class ListingStatus(str, Enum):
    CLEAN = "clean"
    LISTED = "listed"
    UNKNOWN = "unknown"


class SummaryStatus(str, Enum):
    CLEAN = "clean"
    WARNING = "warning"
    CRITICAL = "critical"


class Grade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


class VerificationRequest(Model):
    domain: str
    dkim_selectors: List[str] = Field(default_factory=list, validate_default=True)
    ip: Optional[str] = None
    check_domain_blacklists: bool = True

    @field_validator("domain")
    @classmethod
    def _normalize_domain(cls, value: str) -> str:
        domain = dns_utils.normalize_domain(value)
        if not domain:
            raise ValueError("Domain is required")
        return domain

    @field_validator("dkim_selectors", mode="before")
    @classmethod
    def _normalize_selectors(cls, value: Union[str, List[str], None]) -> List[str]:
        return dns_utils.parse_selectors(value)

    @field_validator("ip")
    @classmethod
    def _validate_ip(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        try:
            return dns_utils.validate_ipv4(value)
        except ValueError:
            raise ValueError(f"Invalid IPv4 address: {value}") from None


# ---------- DNS authentication ----------


class SpfVerdict(Model):
    found: bool
    valid: bool
    record: Optional[str] = None
    issues: List[str] = []
    recommendations: List[str] = []


class SpfBreakdown(Model):
    raw: str
    includes: List[str] = []
    redirect: Optional[str] = None
    lookup_mechanisms: List[str] = []
    all_mechanism: Optional[str] = None


class SpfRecordReport(SpfVerdict):
    """SPF verdict plus the mechanism breakdown of the record, if one was found."""

    details: Optional[SpfBreakdown] = None


class DkimSelectorVerdict(Model):
    selector: str
    found: bool
    valid: bool
    record: Optional[str] = None
    issues: List[str] = []


class DkimVerdict(Model):
    found: bool
    valid: bool
    selectors: List[DkimSelectorVerdict]
    valid_count: int
    total_checked: int
    issues: List[str] = []
    recommendations: List[str] = []


class DmarcVerdict(Model):
    found: bool
    valid: bool
    record: Optional[str] = None
    policy: Optional[str] = None
    issues: List[str] = []
    recommendations: List[str] = []


class DmarcRecordReport(DmarcVerdict):
    tags: Dict[str, str] = {}


class DnsAuthenticationReport(Model):
    spf: SpfVerdict
    dkim: DkimVerdict
    dmarc: DmarcVerdict
    overall_score: int
    overall_status: OverallStatus


# ---------- blacklists & reputation ----------


class CodeInfo(Model):
    type: str
    severity: str
    description: str


class BlacklistCheckResult(Model):
    provider: str
    zone: str
    check_type: CheckType
    query_name: str
    is_listed: bool
    weight: int
    status: ListingStatus
    return_code: Optional[str] = None
    code_info: Optional[CodeInfo] = None
    error: Optional[str] = None


class BlacklistSummary(Model):
    total_checks: int
    listed_count: int
    clean_count: int
    unknown_count: int
    status: SummaryStatus


class ReputationFactor(Model):
    name: str
    status: ListingStatus
    impact: int
    description: str


class ReputationExample(Model):
    provider: str
    description: str
    how_to_check: str
    delisting_url: str


class DomainReputation(Model):
    score: int
    grade: Grade
    factors: List[ReputationFactor] = []
    example: Optional[ReputationExample] = None


class BlacklistReport(Model):
    results: List[BlacklistCheckResult]
    summary: BlacklistSummary
    reputation: DomainReputation


class VerificationReport(Model):
    domain: str
    ip: Optional[str] = None
    authentication: DnsAuthenticationReport
    blacklist: List[BlacklistCheckResult]
    summary: BlacklistSummary
    reputation: DomainReputation
    elapsed_seconds: float = 0.0
