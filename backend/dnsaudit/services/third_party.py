"""
Third-party LAN DNS detection.

A DHCP network handing out a private resolver address other than its own
gateway is using third-party DNS.  Each distinct candidate address is probed
once, concurrently across addresses, to label it Pi-hole or AdGuard Home.
"""
import ipaddress
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, List, Optional

from dnsaudit.adapters.base import ProbeResult, ThirdPartyDnsProbe
from dnsaudit.models.dns import (
    ADGUARD_HOME_NAME,
    GENERIC_THIRD_PARTY_NAME,
    PIHOLE_NAME,
    ExternalDnsInfo,
    ThirdPartyDnsInfo,
)
from dnsaudit.models.network import NetworkInfo, NetworkPurpose
from dnsaudit.services.providers import is_private_ip, is_public_resolver, public_dns_name

logger = logging.getLogger(__name__)


def _candidate_servers(network: NetworkInfo) -> list[str]:
    servers = []
    for server in network.dns_servers:
        if not server or server == network.gateway:
            continue
        if is_public_resolver(server) or not is_private_ip(server):
            logger.debug("Network %s: DNS %s is not a LAN resolver, skipping", network.name, server)
            continue
        servers.append(server)
    return servers


class ThirdPartyDnsDetector:

    def __init__(self, probe: ThirdPartyDnsProbe, max_workers: int = 8):
        self._probe = probe
        self._max_workers = max(1, max_workers)

    def _safe_probe(self, ip: str, custom_port: Optional[int]) -> ProbeResult:
        try:
            return self._probe.probe(ip, custom_port)
        except Exception as exc:
            logger.debug("Probe of %s failed: %s", ip, exc)
            return ProbeResult()

    def probe_all(self, ips: Iterable[str], custom_port: Optional[int] = None) -> dict[str, ProbeResult]:
        unique = list(dict.fromkeys(ips))
        results: dict[str, ProbeResult] = {}
        if not unique:
            return results
        with ThreadPoolExecutor(max_workers=min(self._max_workers, len(unique))) as ex:
            futs = {ex.submit(self._safe_probe, ip, custom_port): ip for ip in unique}
            for fut in as_completed(futs):
                results[futs[fut]] = fut.result()
        return results

    def detect(self, networks: Optional[List[NetworkInfo]], custom_port: Optional[int] = None) -> List[ThirdPartyDnsInfo]:
        candidates: list[tuple[NetworkInfo, str]] = []
        for network in networks or []:
            if not network.dhcp_enabled or not network.dns_servers:
                continue
            for server in _candidate_servers(network):
                logger.info("Network %s uses third-party LAN DNS: %s (gateway: %s)",
                            network.name, server, network.gateway)
                candidates.append((network, server))

        probed = self.probe_all((ip for _, ip in candidates), custom_port)

        found: list[ThirdPartyDnsInfo] = []
        for network, ip in candidates:
            signature = probed.get(ip, ProbeResult())
            if signature.is_pihole:
                name = PIHOLE_NAME
            elif signature.is_adguard_home:
                name = ADGUARD_HOME_NAME
            else:
                name = GENERIC_THIRD_PARTY_NAME
            found.append(ThirdPartyDnsInfo(
                dns_server_ip=ip,
                network_name=network.name,
                network_vlan_id=network.vlan_id,
                network_purpose=network.purpose.value,
                is_pihole=signature.is_pihole,
                is_adguard_home=signature.is_adguard_home,
                provider_name=name,
            ))
        return found


def provider_name_for(servers: List[ThirdPartyDnsInfo]) -> Optional[str]:
    if not servers:
        return None
    if any(s.is_pihole for s in servers):
        return PIHOLE_NAME
    if any(s.is_adguard_home for s in servers):
        return ADGUARD_HOME_NAME
    return GENERIC_THIRD_PARTY_NAME


def is_site_wide(servers: List[ThirdPartyDnsInfo]) -> bool:
    """Used by at least one network that is not Corporate."""
    return any(s.network_purpose != NetworkPurpose.CORPORATE.value for s in servers)


def networks_missing_third_party(networks: Optional[List[NetworkInfo]], servers: List[ThirdPartyDnsInfo]) -> List[NetworkInfo]:
    using = {s.network_name.lower() for s in servers}
    return [n for n in networks or [] if n.dhcp_enabled and n.name.lower() not in using]


def _in_any_subnet(ip: str, subnets: list) -> bool:
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(addr.version == s.version and addr in s for s in subnets)


def detect_external_dns(networks: Optional[List[NetworkInfo]]) -> List[ExternalDnsInfo]:
    """DHCP-advertised resolvers outside every internal subnet."""
    subnets = []
    for network in networks or []:
        if network.subnet:
            try:
                subnets.append(ipaddress.ip_network(network.subnet, strict=False))
            except ValueError:
                continue

    found: list[ExternalDnsInfo] = []
    for network in networks or []:
        if not network.dhcp_enabled:
            continue
        for server in network.dns_servers:
            if not server or server == network.gateway or _in_any_subnet(server, subnets):
                continue
            public = not is_private_ip(server)
            name = public_dns_name(server) if public else None
            logger.info("Network %s uses external DNS: %s (%s)", network.name, server, name or "unknown provider")
            found.append(ExternalDnsInfo(
                dns_server_ip=server,
                network_name=network.name,
                network_vlan_id=network.vlan_id,
                provider_name=name,
                is_public=public,
            ))
    return found
