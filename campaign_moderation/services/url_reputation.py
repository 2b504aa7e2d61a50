"""
URL Reputation Checker.
Classifies outbound campaign links by structural heuristics only.
No network calls: the result is a pure function of the URL strings.
"""

import ipaddress
from typing import List, Optional, Iterable
from urllib.parse import urlparse

from campaign_moderation.models.signals import UrlFinding


class UrlReputationChecker:
    """Flags shorteners, suspicious TLDs, bare IP hosts and malformed links."""

    MALFORMED_RISK = 0.3
    SHORTENER_RISK = 0.4
    SUSPICIOUS_TLD_RISK = 0.5
    IP_HOST_RISK = 0.6

    URL_SHORTENERS = {
        'bit.ly', 'tinyurl.com', 't.co', 'goo.gl', 'ow.ly', 'is.gd',
        'buff.ly', 'cutt.ly', 'rebrand.ly', 'shorturl.at', 'bit.do',
    }

    SUSPICIOUS_TLDS = ('.tk', '.ml', '.ga', '.cf', '.gq', '.click', '.download')

    def evaluate(self, urls: Iterable[str]) -> List[UrlFinding]:
        """One finding per malformed or flagged URL, in input order."""
        findings: List[UrlFinding] = []
        for url in urls:
            finding = self.check_url(url)
            if finding is not None:
                findings.append(finding)
        return findings

    def check_url(self, url: str) -> Optional[UrlFinding]:
        """First matching category wins; clean URLs return None."""
        host = self._hostname(url)
        if host is None:
            return UrlFinding(url=url, risk=self.MALFORMED_RISK, reason='Malformed URL')

        if self._is_shortener(host):
            return UrlFinding(
                url=url, risk=self.SHORTENER_RISK,
                reason='URL shortener detected - potential redirect hiding'
            )

        if host.endswith(self.SUSPICIOUS_TLDS):
            return UrlFinding(url=url, risk=self.SUSPICIOUS_TLD_RISK, reason='Suspicious top-level domain')

        if self._is_ip(host):
            return UrlFinding(
                url=url, risk=self.IP_HOST_RISK,
                reason='Direct IP address instead of domain name'
            )

        return None

    @staticmethod
    def max_risk(findings: List[UrlFinding]) -> float:
        return max((f.risk for f in findings), default=0.0)

    @staticmethod
    def _hostname(url: str) -> Optional[str]:
        """Lowercased host of an absolute http(s) URL, or None if malformed."""
        if not isinstance(url, str):
            return None
        try:
            parsed = urlparse(url.strip())
            parsed.port  # raises ValueError on a bad port
        except ValueError:
            return None

        if parsed.scheme not in ('http', 'https') or not parsed.hostname:
            return None
        return parsed.hostname.lower().rstrip('.')

    @staticmethod
    def _is_ip(host: str) -> bool:
        try:
            ipaddress.ip_address(host)
        except ValueError:
            return False
        return True

    def _is_shortener(self, host: str) -> bool:
        return any(host == s or host.endswith('.' + s) for s in self.URL_SHORTENERS)
