from typing import Callable, Optional

from dnsaudit.adapters.base import ProbeResult, ThirdPartyDnsProbe
from dnsaudit.adapters.http_probe import HttpxDnsProbe
from dnsaudit.core.config import Settings, get_settings


class NullProbe(ThirdPartyDnsProbe):
    """Offline probe: never recognizes anything."""

    def probe(self, ip: str, custom_port: Optional[int] = None) -> ProbeResult:
        return ProbeResult()


def _http_probe(settings: Settings) -> ThirdPartyDnsProbe:
    return HttpxDnsProbe(timeout=settings.probe_timeout_seconds, verify=settings.probe_verify_tls)


_REGISTRY: dict[str, Callable[[Settings], ThirdPartyDnsProbe]] = {
    "http": _http_probe,
    "none": lambda settings: NullProbe(),
}


def get_probe(name: str, settings: Optional[Settings] = None) -> ThirdPartyDnsProbe:
    factory = _REGISTRY.get(name)
    if not factory:
        raise ValueError(f"Unknown probe: {name!r}. Available: {list(_REGISTRY)}")
    return factory(settings or get_settings())
