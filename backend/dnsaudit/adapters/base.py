"""
Abstract ThirdPartyDnsProbe interface: all probes must implement this.

A probe answers one question for a LAN resolver address: does a known DNS
appliance web UI (Pi-hole, AdGuard Home) answer on it?
"""
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel


class ProbeResult(BaseModel):
    is_pihole: bool = False
    is_adguard_home: bool = False

    @property
    def detected(self) -> bool:
        return self.is_pihole or self.is_adguard_home


class ThirdPartyDnsProbe(ABC):

    @abstractmethod
    def probe(self, ip: str, custom_port: Optional[int] = None) -> ProbeResult:
        """Returns the signatures found on ip. Must never raise; failures read as no signature."""

    def close(self) -> None:
        """Optional: release pooled connections."""

    def __enter__(self) -> "ThirdPartyDnsProbe":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
