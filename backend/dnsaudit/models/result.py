"""
Result structures returned by one analysis run.
"""
from typing import List, Optional

from pydantic import BaseModel

from dnsaudit.models.dns import (
    ADGUARD_HOME_NAME,
    PIHOLE_NAME,
    DeviceDnsInfo,
    DnsServerConfig,
    ExternalDnsInfo,
    ThirdPartyDnsInfo,
    WanInterfaceDns,
)
from dnsaudit.models.issue import AuditIssue, SEVERITY_CRITICAL
from dnsaudit.models.nat import DnatRule


class ProtocolBlock(BaseModel):
    """First enabled rule that blocks one bypass protocol."""
    protocol: str
    rule_id: str
    rule_name: str
    blocked_domains: List[str] = []


class CoverageResult(BaseModel):
    covered_network_ids: List[str] = []
    uncovered_network_ids: List[str] = []
    covered_network_names: List[str] = []
    uncovered_network_names: List[str] = []
    excluded_network_names: List[str] = []
    single_ip_rules: List[str] = []

    @property
    def has_full_coverage(self) -> bool:
        return not self.uncovered_network_ids


class DnatCoverageResult(CoverageResult):
    has_dnat_dns_rules: bool = False
    redirect_target_ip: Optional[str] = None
    rules: List[DnatRule] = []


class DnatValidation(BaseModel):
    redirect_target_is_valid: bool = True
    destination_filter_is_valid: bool = True
    expected_destinations: List[str] = []
    invalid_rules: List[str] = []
    restricted_destination_rules: List[str] = []


class DnsSecurityResult(BaseModel):
    # DoH configuration
    doh_state: str = "disabled"
    doh_configured: bool = False
    configured_servers: List[DnsServerConfig] = []

    gateway_name: Optional[str] = None

    # WAN DNS
    wan_dns_servers: List[str] = []
    wan_interfaces: List[WanInterfaceDns] = []
    using_isp_dns: bool = False
    wan_dns_matches_doh: bool = False
    wan_dns_provider: Optional[str] = None
    expected_dns_provider: Optional[str] = None

    # Firewall bypass rules
    has_dns53_block_rule: bool = False
    dns53_rule_name: Optional[str] = None
    has_dot_block_rule: bool = False
    dot_rule_name: Optional[str] = None
    has_doq_block_rule: bool = False
    doq_rule_name: Optional[str] = None
    has_doh_block_rule: bool = False
    doh_rule_name: Optional[str] = None
    has_doh3_block_rule: bool = False
    doh3_rule_name: Optional[str] = None
    doh_blocked_domains: List[str] = []
    doh3_blocked_domains: List[str] = []

    # Firewall DNS-53 coverage
    dns53_provides_full_coverage: bool = False
    dns53_covered_networks: List[str] = []
    dns53_uncovered_networks: List[str] = []

    # Device DNS
    device_dns_points_to_gateway: bool = True
    total_devices_checked: int = 0
    devices_with_correct_dns: int = 0
    dhcp_device_count: int = 0
    device_dns_details: List[DeviceDnsInfo] = []

    # Third-party LAN DNS
    has_third_party_dns: bool = False
    third_party_dns_servers: List[ThirdPartyDnsInfo] = []
    third_party_dns_provider_name: Optional[str] = None
    is_third_party_site_wide: bool = False
    external_dns_servers: List[ExternalDnsInfo] = []

    # DNAT redirection
    has_dnat_dns_rules: bool = False
    dnat_provides_full_coverage: bool = False
    dnat_covered_networks: List[str] = []
    dnat_uncovered_networks: List[str] = []
    dnat_excluded_networks: List[str] = []
    dnat_single_ip_rules: List[str] = []
    dnat_redirect_target: Optional[str] = None
    dnat_redirect_target_is_valid: bool = True
    dnat_destination_filter_is_valid: bool = True
    expected_dnat_destinations: List[str] = []
    invalid_dnat_rules: List[str] = []
    restricted_dnat_rules: List[str] = []

    issues: List[AuditIssue] = []
    hardening_notes: List[str] = []

    @property
    def wan_dns_order_correct(self) -> bool:
        return all(w.order_correct for w in self.wan_interfaces)

    @property
    def is_pihole_detected(self) -> bool:
        return any(t.is_pihole for t in self.third_party_dns_servers)

    @property
    def is_adguard_home_detected(self) -> bool:
        return any(t.is_adguard_home for t in self.third_party_dns_servers)

    @property
    def is_known_third_party(self) -> bool:
        return self.third_party_dns_provider_name in (PIHOLE_NAME, ADGUARD_HOME_NAME)

    @property
    def has_dns_control(self) -> bool:
        return self.doh_configured or self.has_third_party_dns

    def issue_types(self) -> List[str]:
        return [i.type for i in self.issues]


class DnsSecuritySummary(BaseModel):
    doh_enabled: bool = False
    doh_providers: List[str] = []
    dns_leak_protection: bool = False
    dot_blocked: bool = False
    doh_bypass_blocked: bool = False
    doq_bypass_blocked: bool = False
    doh3_bypass_blocked: bool = False
    fully_protected: bool = False
    issue_count: int = 0
    critical_issue_count: int = 0

    wan_dns_servers: List[str] = []
    wan_dns_matches_doh: bool = False
    wan_dns_provider: Optional[str] = None
    expected_dns_provider: Optional[str] = None

    device_dns_points_to_gateway: bool = True
    total_devices_checked: int = 0
    devices_with_correct_dns: int = 0
    dhcp_device_count: int = 0

    @classmethod
    def count_critical(cls, issues: List[AuditIssue]) -> int:
        return sum(1 for i in issues if i.severity == SEVERITY_CRITICAL)
