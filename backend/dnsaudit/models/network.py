from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

NATIVE_VLAN_ID = 1


class NetworkPurpose(str, Enum):
    CORPORATE = "corporate"
    HOME = "home"
    IOT = "iot"
    SECURITY = "security"
    GUEST = "guest"
    MANAGEMENT = "management"
    UNKNOWN = "unknown"


class NetworkInfo(BaseModel):
    id: str
    name: str
    vlan_id: int = NATIVE_VLAN_ID
    subnet: Optional[str] = None
    gateway: Optional[str] = None
    dhcp_enabled: bool = False
    dns_servers: List[str] = []
    purpose: NetworkPurpose = NetworkPurpose.UNKNOWN
    firewall_zone_id: Optional[str] = None
    is_vendor_guest: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def is_native(self) -> bool:
        return self.vlan_id == NATIVE_VLAN_ID


class SwitchInfo(BaseModel):
    """Infrastructure device as reported by the controller's device inventory."""
    name: str
    type: Optional[str] = None
    ip_address: Optional[str] = None
    is_gateway: bool = False
    configured_dns1: Optional[str] = None
    network_config_type: Optional[str] = None  # dhcp | static
