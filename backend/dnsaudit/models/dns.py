import ipaddress
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

GENERIC_THIRD_PARTY_NAME = "Third-Party LAN DNS"
PIHOLE_NAME = "Pi-hole"
ADGUARD_HOME_NAME = "AdGuard Home"


class ProviderRecord(BaseModel):
    name: str
    stamp_prefix: str
    hostnames: List[str] = []
    # Exact addresses, trailing-dot prefixes ("45.90.") or CIDR blocks
    dns_ips: List[str] = []
    ipv6_prefixes: List[str] = []
    supports_filtering: bool = False
    has_custom_config: bool = False
    description: str = ""

    model_config = ConfigDict(frozen=True)

    def matches_ip(self, ip: Optional[str]) -> bool:
        if not ip:
            return False
        for expected in self.dns_ips:
            if expected.endswith("."):
                if ip.startswith(expected):
                    return True
            elif "/" in expected:
                try:
                    if ipaddress.ip_address(ip) in ipaddress.ip_network(expected, strict=False):
                        return True
                except ValueError:
                    continue
            elif ip == expected:
                return True
        lowered = ip.lower()
        return any(lowered.startswith(prefix.lower()) for prefix in self.ipv6_prefixes)

    @property
    def exact_ips(self) -> List[str]:
        return [ip for ip in self.dns_ips if not ip.endswith(".") and "/" not in ip]


class StampInfo(BaseModel):
    protocol: int
    protocol_name: str
    hostname: Optional[str] = None
    path: Optional[str] = None
    ip_address: Optional[str] = None
    port: Optional[int] = None
    dnssec: bool = False
    no_logging: bool = False
    no_filtering: bool = False
    provider: Optional[ProviderRecord] = None
    raw_stamp: str

    def display_summary(self) -> str:
        label = (self.provider.name if self.provider else None) or self.hostname or "Unknown"
        features = []
        if self.dnssec:
            features.append("DNSSEC")
        if self.no_logging:
            features.append("No-Log")
        if not self.no_filtering and self.provider and self.provider.supports_filtering:
            features.append("Filtered")
        suffix = f" [{', '.join(features)}]" if features else ""
        return f"{label} ({self.protocol_name}){suffix}"


class DnsServerConfig(BaseModel):
    server_name: str
    stamp: Optional[StampInfo] = None
    provider: Optional[ProviderRecord] = None
    enabled: bool = True
    is_custom: bool = False

    @property
    def resolved_provider(self) -> Optional[ProviderRecord]:
        if self.stamp and self.stamp.provider:
            return self.stamp.provider
        return self.provider


class ThirdPartyDnsInfo(BaseModel):
    dns_server_ip: str
    network_name: str
    network_vlan_id: int = 1
    network_purpose: Optional[str] = None
    is_lan_ip: bool = True
    is_pihole: bool = False
    is_adguard_home: bool = False
    provider_name: str = GENERIC_THIRD_PARTY_NAME


class ExternalDnsInfo(BaseModel):
    dns_server_ip: str
    network_name: str
    network_vlan_id: int = 1
    provider_name: Optional[str] = None
    is_public: bool = False


class WanInterfaceDns(BaseModel):
    interface_name: str
    port_name: Optional[str] = None
    ip_address: Optional[str] = None
    is_up: bool = False
    dns_servers: List[str] = []
    matches_doh: bool = False
    order_correct: bool = True
    detected_provider: Optional[str] = None

    @property
    def has_static_dns(self) -> bool:
        return bool(self.dns_servers)

    @property
    def display_name(self) -> str:
        label = self.interface_name.upper()
        if self.port_name and self.port_name.lower() != self.interface_name.lower():
            return f"{label} ({self.port_name})"
        return label


class DeviceDnsInfo(BaseModel):
    device_name: str
    device_type: str = "unknown"
    device_ip: Optional[str] = None
    configured_dns: Optional[str] = None
    expected_gateway: Optional[str] = None
    points_to_gateway: bool = False
    uses_dhcp: bool = False
