from typing import Any, Optional

from pydantic import BaseModel

SEVERITY_CRITICAL = "critical"
SEVERITY_RECOMMENDED = "recommended"
SEVERITY_INFORMATIONAL = "informational"


class IssueType:
    DNS_NO_DOH = "DNS_NO_DOH"
    DNS_DOH_AUTO = "DNS_DOH_AUTO"
    DNS_NO_53_BLOCK = "DNS_NO_53_BLOCK"
    DNS_53_PARTIAL_COVERAGE = "DNS_53_PARTIAL_COVERAGE"
    DNS_NO_DOT_BLOCK = "DNS_NO_DOT_BLOCK"
    DNS_NO_DOH_BLOCK = "DNS_NO_DOH_BLOCK"
    DNS_NO_DOQ_BLOCK = "DNS_NO_DOQ_BLOCK"
    DNS_ISP = "DNS_ISP"
    DNS_WAN_MISMATCH = "DNS_WAN_MISMATCH"
    DNS_WAN_ORDER = "DNS_WAN_ORDER"
    DNS_WAN_NO_STATIC = "DNS_WAN_NO_STATIC"
    DNS_DEVICE_MISCONFIGURED = "DNS_DEVICE_MISCONFIGURED"
    DNS_THIRD_PARTY_DETECTED = "DNS_THIRD_PARTY_DETECTED"
    DNS_UNKNOWN_CONFIG = "DNS_UNKNOWN_CONFIG"
    DNS_INCONSISTENT_CONFIG = "DNS_INCONSISTENT_CONFIG"
    DNS_DNAT_PARTIAL_COVERAGE = "DNS_DNAT_PARTIAL_COVERAGE"
    DNS_DNAT_SINGLE_IP = "DNS_DNAT_SINGLE_IP"
    DNS_DNAT_RESTRICTED_DESTINATION = "DNS_DNAT_RESTRICTED_DESTINATION"
    DNS_DNAT_WRONG_DESTINATION = "DNS_DNAT_WRONG_DESTINATION"


class AuditIssue(BaseModel):
    type: str
    severity: str
    message: str
    recommended_action: Optional[str] = None
    device_name: Optional[str] = None
    port: Optional[str] = None
    port_name: Optional[str] = None
    rule_id: Optional[str] = None
    score_impact: int = 0
    metadata: dict[str, Any] = {}
