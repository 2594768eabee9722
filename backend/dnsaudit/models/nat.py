from typing import Optional

from pydantic import BaseModel, Field

# Coverage classification of a DNAT source filter
COVERAGE_NETWORK = "network"
COVERAGE_SUBNET = "subnet"
COVERAGE_SINGLE_IP = "single_ip"
COVERAGE_INTERFACE = "interface"
COVERAGE_ANY = "any"


class DnatDestinationFilter(BaseModel):
    filter_type: Optional[str] = None
    address: Optional[str] = None  # single address or start-end range
    invert_address: bool = False
    port: Optional[str] = None


class DnatSourceFilter(BaseModel):
    filter_type: str = "NONE"  # NETWORK_CONF | ADDRESS_AND_PORT | ANY | NONE
    network_conf_id: Optional[str] = None
    address: Optional[str] = None  # CIDR or single address
    match_opposite: bool = False


class DnatRule(BaseModel):
    id: str
    description: Optional[str] = None
    enabled: bool = False
    protocol: Optional[str] = None
    # Redirect target: single address or start-end range
    ip_address: Optional[str] = None
    destination_filter: DnatDestinationFilter = Field(default_factory=DnatDestinationFilter)
    source_filter: DnatSourceFilter = Field(default_factory=DnatSourceFilter)
    in_interface: Optional[str] = None

    @property
    def coverage_type(self) -> str:
        src = self.source_filter
        if src.filter_type.upper() == "NETWORK_CONF" and src.network_conf_id:
            return COVERAGE_NETWORK
        if src.address:
            return COVERAGE_SUBNET if "/" in src.address else COVERAGE_SINGLE_IP
        if self.in_interface:
            return COVERAGE_INTERFACE
        return COVERAGE_ANY

    @property
    def has_restricted_destination(self) -> bool:
        """Destination address set without inversion: only catches traffic already bound for it."""
        return bool(self.destination_filter.address) and not self.destination_filter.invert_address

    @property
    def label(self) -> str:
        return self.description or self.id
