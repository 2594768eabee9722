"""
Known encrypted-DNS providers and lookup helpers.

The tables are module-level and read-only; lookups walk them in declaration
order so the first provider that matches wins.
"""
import ipaddress
import re
from typing import Iterable, Optional

from dnsaudit.models.dns import ProviderRecord

PROVIDERS: dict[str, ProviderRecord] = {
    "NextDNS": ProviderRecord(
        name="NextDNS",
        stamp_prefix="nextdns",
        hostnames=["nextdns.io"],
        dns_ips=["45.90."],
        ipv6_prefixes=["2a07:a8c0:", "2a07:a8c1:"],
        supports_filtering=True,
        has_custom_config=True,
        description="NextDNS - Privacy-focused DNS with filtering",
    ),
    "AdGuard": ProviderRecord(
        name="AdGuard",
        stamp_prefix="adguard",
        hostnames=["dns.adguard.com", "dns-family.adguard.com", "dns-unfiltered.adguard.com"],
        dns_ips=["94.140.14.14", "94.140.15.15", "94.140.14.15", "94.140.15.16"],
        supports_filtering=True,
        has_custom_config=True,
        description="AdGuard DNS with ad blocking",
    ),
    "Cloudflare": ProviderRecord(
        name="Cloudflare",
        stamp_prefix="cloudflare",
        hostnames=[
            "cloudflare-dns.com", "1dot1dot1dot1.cloudflare-dns.com", "one.one.one.one",
            "dns.cloudflare.com", "mozilla.cloudflare-dns.com", "family.cloudflare-dns.com",
            "security.cloudflare-dns.com",
        ],
        dns_ips=["1.1.1.1", "1.0.0.1", "1.1.1.2", "1.0.0.2", "1.1.1.3", "1.0.0.3"],
        description="Cloudflare 1.1.1.1 DNS",
    ),
    "Google": ProviderRecord(
        name="Google",
        stamp_prefix="google",
        hostnames=["dns.google", "dns.google.com", "8888.google", "dns64.dns.google"],
        dns_ips=["8.8.8.8", "8.8.4.4"],
        description="Google Public DNS",
    ),
    "Quad9": ProviderRecord(
        name="Quad9",
        stamp_prefix="quad9",
        hostnames=["dns.quad9.net", "dns9.quad9.net", "dns10.quad9.net", "dns11.quad9.net"],
        dns_ips=["9.9.9.9", "149.112.112.112", "9.9.9.10", "149.112.112.10"],
        supports_filtering=True,
        description="Quad9 Security-focused DNS",
    ),
    "OpenDNS": ProviderRecord(
        name="OpenDNS",
        stamp_prefix="opendns",
        hostnames=["doh.opendns.com", "doh.familyshield.opendns.com", "doh.sandbox.opendns.com"],
        dns_ips=["208.67.222.222", "208.67.220.220", "208.67.222.123", "208.67.220.123"],
        supports_filtering=True,
        description="Cisco OpenDNS",
    ),
    "CleanBrowsing": ProviderRecord(
        name="CleanBrowsing",
        stamp_prefix="cleanbrowsing",
        hostnames=["doh.cleanbrowsing.org"],
        dns_ips=["185.228.168.168", "185.228.169.168", "185.228.168.10", "185.228.169.11"],
        supports_filtering=True,
        description="CleanBrowsing Family-safe DNS",
    ),
    "LibreDNS": ProviderRecord(
        name="LibreDNS",
        stamp_prefix="libredns",
        hostnames=["doh.libredns.gr"],
        dns_ips=["116.202.176.26"],
        description="LibreDNS - Privacy-focused",
    ),
    "ControlD": ProviderRecord(
        name="ControlD",
        stamp_prefix="controld",
        hostnames=["controld.com", "dns.controld.com"],
        dns_ips=["76.76."],
        supports_filtering=True,
        has_custom_config=True,
        description="ControlD - Privacy-focused DNS with filtering",
    ),
}

# Display names for well-known public resolvers seen on LAN DHCP options
PUBLIC_DNS_NAMES: dict[str, str] = {
    "1.1.1.1": "Cloudflare",
    "1.0.0.1": "Cloudflare",
    "8.8.8.8": "Google",
    "8.8.4.4": "Google",
    "9.9.9.9": "Quad9",
    "149.112.112.112": "Quad9",
    "208.67.222.222": "OpenDNS",
    "208.67.220.220": "OpenDNS",
    "94.140.14.14": "AdGuard DNS",
    "94.140.15.15": "AdGuard DNS",
    "76.76.2.0": "Control D",
    "76.76.10.0": "Control D",
    "185.228.168.9": "CleanBrowsing",
    "185.228.169.9": "CleanBrowsing",
}

NEXTDNS_PRIMARY_PREFIX = "45.90.28."
NEXTDNS_SECONDARY_PREFIX = "45.90.30."
_NEXTDNS_IPV6_RE = re.compile(r"^2a07:a8c[01]::([0-9a-f]+):([0-9a-f]+)$", re.IGNORECASE)


def identify_provider(hostname: Optional[str]) -> Optional[ProviderRecord]:
    """Provider whose known hostname appears anywhere in hostname."""
    if not hostname:
        return None
    host = hostname.lower()
    for provider in PROVIDERS.values():
        if any(h.lower() in host for h in provider.hostnames):
            return provider
    return None


def identify_provider_from_name(server_name: Optional[str]) -> Optional[ProviderRecord]:
    """Built-in server names ("cloudflare-family", "NextDNS-abc123") start with the provider key."""
    if not server_name:
        return None
    name = server_name.lower()
    for key, provider in PROVIDERS.items():
        if name.startswith(key.lower()):
            return provider
    return None


def identify_provider_from_ip(ip: Optional[str]) -> Optional[ProviderRecord]:
    if not ip:
        return None
    for provider in PROVIDERS.values():
        if provider.matches_ip(ip):
            return provider
    return None


def provider_label(ip: str) -> str:
    provider = identify_provider_from_ip(ip)
    return f"{ip} ({provider.name if provider else 'Unknown'})"


def public_dns_name(ip: Optional[str]) -> Optional[str]:
    if not ip:
        return None
    name = PUBLIC_DNS_NAMES.get(ip)
    if name:
        return name
    provider = identify_provider_from_ip(ip)
    return provider.name if provider else None


def is_public_resolver(ip: Optional[str]) -> bool:
    return public_dns_name(ip) is not None


def is_private_ip(ip: Optional[str]) -> bool:
    try:
        addr = ipaddress.ip_address((ip or "").strip())
    except ValueError:
        return False
    return addr.is_private and not addr.is_loopback and not addr.is_link_local


# ---------------------------------------------------------------------------
# NextDNS
# ---------------------------------------------------------------------------

def extract_nextdns_profile_id(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    return path.lstrip("/") or None


def extract_profile_id_from_nextdns_ipv6(ip: Optional[str]) -> Optional[str]:
    if not ip:
        return None
    match = _NEXTDNS_IPV6_RE.match(ip)
    if not match:
        return None
    return (match.group(1) + match.group(2)).lower()


def nextdns_ipv6_matches_profile(ip: Optional[str], expected_profile_id: Optional[str]) -> bool:
    if not ip:
        return False
    if not ip.lower().startswith(tuple(PROVIDERS["NextDNS"].ipv6_prefixes)):
        return False
    if not expected_profile_id:
        return True
    actual = extract_profile_id_from_nextdns_ipv6(ip)
    return actual is not None and actual.lower() == expected_profile_id.lower()


def nextdns_order_correct(servers: Iterable[str]) -> bool:
    """dns1 (45.90.28.x) must come before dns2 (45.90.30.x) when both are present."""
    ordered = list(servers)
    primary = next((i for i, s in enumerate(ordered) if s.startswith(NEXTDNS_PRIMARY_PREFIX)), None)
    secondary = next((i for i, s in enumerate(ordered) if s.startswith(NEXTDNS_SECONDARY_PREFIX)), None)
    if primary is None or secondary is None:
        return True
    return primary < secondary
