"""
HTTP probe for third-party LAN DNS appliances.

Pi-hole:       GET {scheme}://{ip}:{port}/api/info/login  → JSON {"dns": true, ...}
AdGuard Home:  GET /login.html → <script src="login.<hash>.js"> whose body mentions "AdGuard"

Each request gets one attempt with a short timeout; any transport or decode
failure is treated as "not this product".
"""
import json
import logging
import re
from typing import Optional

import httpx

from dnsaudit.adapters.base import ProbeResult, ThirdPartyDnsProbe

logger = logging.getLogger(__name__)

_PIHOLE_PATH = "/api/info/login"
_ADGUARD_LOGIN_PATH = "/login.html"
_ADGUARD_SCRIPT_RE = re.compile(r'src="(login\.[^"]+\.js)"')
_ADGUARD_SIGNATURE = "AdGuard"

# Default (port, scheme) candidates tried after any custom port
_PIHOLE_PORTS: list[tuple[int, str]] = [(80, "http"), (443, "https"), (8080, "http")]
_ADGUARD_PORTS: list[tuple[int, str]] = [(80, "http"), (443, "https"), (3000, "http")]


def _candidates(defaults: list[tuple[int, str]], custom_port: Optional[int]) -> list[tuple[int, str]]:
    ports: list[tuple[int, str]] = []
    if custom_port:
        ports.append((custom_port, "http"))
        ports.append((custom_port, "https"))
    for entry in defaults:
        if entry not in ports:
            ports.append(entry)
    return ports


def _base_url(scheme: str, ip: str, port: int) -> str:
    host = f"[{ip}]" if ":" in ip else ip
    return f"{scheme}://{host}:{port}"


class HttpxDnsProbe(ThirdPartyDnsProbe):
    """One pooled client shared by every worker thread; close() releases it."""

    def __init__(self, timeout: float = 1.0, verify: bool = False, client: Optional[httpx.Client] = None):
        if client is None:
            client = httpx.Client(verify=verify, timeout=timeout, follow_redirects=False)
        self._client = client

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # Pi-hole
    # ------------------------------------------------------------------

    def _check_pihole(self, client: httpx.Client, base_url: str) -> bool:
        try:
            resp = client.get(base_url + _PIHOLE_PATH)
        except httpx.HTTPError as exc:
            logger.debug("HttpxDnsProbe: pihole GET %s failed: %s", base_url, exc)
            return False
        if resp.status_code != 200:
            logger.debug("HttpxDnsProbe: pihole GET %s → HTTP %s", base_url, resp.status_code)
            return False
        text = resp.text
        try:
            body = json.loads(text)
        except ValueError:
            # Some builds prepend PHP notices to the JSON body
            return '"dns"' in text
        return isinstance(body, dict) and body.get("dns") is True

    def is_pihole(self, ip: str, custom_port: Optional[int] = None) -> bool:
        client = self._client
        for port, scheme in _candidates(_PIHOLE_PORTS, custom_port):
            base_url = _base_url(scheme, ip, port)
            try:
                if self._check_pihole(client, base_url):
                    logger.info("HttpxDnsProbe: Pi-hole detected at %s", base_url)
                    return True
            except Exception as exc:
                logger.debug("HttpxDnsProbe: pihole check %s errored: %s", base_url, exc)
        return False

    # ------------------------------------------------------------------
    # AdGuard Home
    # ------------------------------------------------------------------

    def _check_adguard(self, client: httpx.Client, base_url: str) -> bool:
        try:
            resp = client.get(base_url + _ADGUARD_LOGIN_PATH)
        except httpx.HTTPError as exc:
            logger.debug("HttpxDnsProbe: adguard GET %s failed: %s", base_url, exc)
            return False
        if resp.status_code != 200:
            return False
        match = _ADGUARD_SCRIPT_RE.search(resp.text)
        if not match:
            return False
        try:
            script = client.get(f"{base_url}/{match.group(1)}")
        except httpx.HTTPError as exc:
            logger.debug("HttpxDnsProbe: adguard script GET %s failed: %s", base_url, exc)
            return False
        return script.status_code == 200 and _ADGUARD_SIGNATURE in script.text

    def is_adguard_home(self, ip: str, custom_port: Optional[int] = None) -> bool:
        client = self._client
        for port, scheme in _candidates(_ADGUARD_PORTS, custom_port):
            base_url = _base_url(scheme, ip, port)
            try:
                if self._check_adguard(client, base_url):
                    logger.info("HttpxDnsProbe: AdGuard Home detected at %s", base_url)
                    return True
            except Exception as exc:
                logger.debug("HttpxDnsProbe: adguard check %s errored: %s", base_url, exc)
        return False

    def probe(self, ip: str, custom_port: Optional[int] = None) -> ProbeResult:
        if self.is_pihole(ip, custom_port):
            return ProbeResult(is_pihole=True)
        return ProbeResult(is_adguard_home=self.is_adguard_home(ip, custom_port))
