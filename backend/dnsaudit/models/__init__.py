from dnsaudit.models.firewall import (
    DestinationSelector, FirewallRule, FirewallZone, PortGroup, SourceSelector,
)
from dnsaudit.models.network import NetworkInfo, NetworkPurpose, SwitchInfo
from dnsaudit.models.nat import DnatDestinationFilter, DnatRule, DnatSourceFilter
from dnsaudit.models.dns import (
    DeviceDnsInfo, DnsServerConfig, ExternalDnsInfo, ProviderRecord, StampInfo,
    ThirdPartyDnsInfo, WanInterfaceDns,
)
from dnsaudit.models.issue import AuditIssue, IssueType
from dnsaudit.models.result import (
    CoverageResult, DnatCoverageResult, DnatValidation, DnsSecurityResult,
    DnsSecuritySummary, ProtocolBlock,
)
