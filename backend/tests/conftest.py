from typing import Optional

import pytest

from dnsaudit.adapters.base import ProbeResult, ThirdPartyDnsProbe
from dnsaudit.core.config import Settings
from dnsaudit.models.network import NetworkInfo, NetworkPurpose


class StubProbe(ThirdPartyDnsProbe):
    """Deterministic probe: answers from a fixed ip → ProbeResult table and records calls."""

    def __init__(self, answers: Optional[dict] = None):
        self.answers = answers or {}
        self.calls: list[tuple[str, Optional[int]]] = []

    def probe(self, ip: str, custom_port: Optional[int] = None) -> ProbeResult:
        self.calls.append((ip, custom_port))
        return self.answers.get(ip, ProbeResult())


@pytest.fixture(name="settings")
def settings_fixture():
    return Settings(probe_backend="none", probe_max_workers=4)


@pytest.fixture(name="stub_probe")
def stub_probe_fixture():
    return StubProbe()


def make_network(
    id: str = "net-lan",
    name: str = "LAN",
    vlan_id: int = 1,
    subnet: str = "192.168.1.0/24",
    gateway: str = "192.168.1.1",
    dhcp_enabled: bool = True,
    dns_servers: Optional[list] = None,
    purpose: NetworkPurpose = NetworkPurpose.HOME,
    firewall_zone_id: Optional[str] = None,
) -> NetworkInfo:
    return NetworkInfo(
        id=id,
        name=name,
        vlan_id=vlan_id,
        subnet=subnet,
        gateway=gateway,
        dhcp_enabled=dhcp_enabled,
        dns_servers=dns_servers or [],
        purpose=purpose,
        firewall_zone_id=firewall_zone_id,
    )


@pytest.fixture(name="two_networks")
def two_networks_fixture():
    return [
        make_network(),
        make_network(id="net-iot", name="IoT", vlan_id=20, subnet="192.168.20.0/24",
                     gateway="192.168.20.1", purpose=NetworkPurpose.IOT),
    ]
