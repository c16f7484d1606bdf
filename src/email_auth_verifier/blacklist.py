"""
DNS-based blacklist (DNSBL) probing.

A listing is signalled by the zone answering an A query for
``{reversed ip}.{zone}`` or ``{domain}.{zone}``. The returned address is a
reason code; a few codes are documented by their providers as query errors
rather than listings and are reported as ``unknown``.
"""

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from .dns_utils import DnsResolver, blacklist_domain, reverse_ip
from .models import (
    BlacklistCheckResult,
    BlacklistSummary,
    CheckType,
    CodeInfo,
    ListingStatus,
    SummaryStatus,
)

logger = structlog.get_logger()

SPAMHAUS_LOOKUP_URL = "https://check.spamhaus.org/"
CRITICAL_LISTING_COUNT = 2


@dataclass(frozen=True)
class BlacklistProvider:
    name: str
    zone: str
    check_type: CheckType
    weight: int
    delisting_url: str


BLACKLIST_PROVIDERS: Tuple[BlacklistProvider, ...] = (
    BlacklistProvider("Spamhaus SBL", "sbl.spamhaus.org", CheckType.IP, 5, SPAMHAUS_LOOKUP_URL),
    BlacklistProvider("Spamhaus XBL", "xbl.spamhaus.org", CheckType.IP, 5, SPAMHAUS_LOOKUP_URL),
    BlacklistProvider("Spamhaus PBL", "pbl.spamhaus.org", CheckType.IP, 5, SPAMHAUS_LOOKUP_URL),
    BlacklistProvider("Spamhaus DBL", "dbl.spamhaus.org", CheckType.DOMAIN, 25, SPAMHAUS_LOOKUP_URL),
    BlacklistProvider(
        "Barracuda",
        "b.barracudacentral.org",
        CheckType.IP,
        5,
        "https://www.barracudacentral.org/rbl/removal-request",
    ),
    BlacklistProvider(
        "SpamCop", "bl.spamcop.net", CheckType.IP, 5, "https://www.spamcop.net/bl.shtml"
    ),
    BlacklistProvider(
        "SORBS", "dnsbl.sorbs.net", CheckType.IP, 5, "http://www.sorbs.net/delisting/"
    ),
    BlacklistProvider(
        "UCEPROTECT L1",
        "dnsbl-1.uceprotect.net",
        CheckType.IP,
        5,
        "https://www.uceprotect.net/en/rblcheck.php",
    ),
    BlacklistProvider(
        "UCEPROTECT L2",
        "dnsbl-2.uceprotect.net",
        CheckType.IP,
        5,
        "https://www.uceprotect.net/en/rblcheck.php",
    ),
    BlacklistProvider(
        "Invaluement",
        "invaluement.com",
        CheckType.DOMAIN,
        10,
        "https://www.invaluement.com/lookup/",
    ),
    BlacklistProvider(
        "SURBL", "multi.surbl.org", CheckType.DOMAIN, 20, "https://www.surbl.org/surbl-analysis"
    ),
    BlacklistProvider(
        "URIBL", "multi.uribl.com", CheckType.DOMAIN, 15, "https://admin.uribl.com/"
    ),
)

PROVIDERS_BY_NAME: Dict[str, BlacklistProvider] = {p.name: p for p in BLACKLIST_PROVIDERS}

# (zone, returned address) -> meaning. type "error" means the zone refused the
# query (public resolver, rate limit, ...), so the result is unknown.
_SPAMHAUS_ERRORS = {
    "127.255.255.252": CodeInfo(
        type="error", severity="info", description="Query was malformed (typo in DNSBL name)"
    ),
    "127.255.255.254": CodeInfo(
        type="error",
        severity="info",
        description="Query via public/open resolver was refused by Spamhaus",
    ),
    "127.255.255.255": CodeInfo(
        type="error", severity="info", description="Excessive number of queries, rate limited"
    ),
}
_SPAMHAUS_IP_CODES = {
    "127.0.0.2": CodeInfo(
        type="sbl", severity="high", description="Direct UBE sources, spam operations and spam services"
    ),
    "127.0.0.3": CodeInfo(
        type="css", severity="high", description="Low-reputation snowshoe spam sender (CSS)"
    ),
    "127.0.0.4": CodeInfo(
        type="xbl", severity="critical", description="Exploited host: botnet or compromised machine"
    ),
    "127.0.0.9": CodeInfo(
        type="drop", severity="critical", description="Hijacked netblock (Spamhaus DROP)"
    ),
    "127.0.0.10": CodeInfo(
        type="pbl", severity="medium", description="End-user IP range that should not send mail directly (ISP maintained)"
    ),
    "127.0.0.11": CodeInfo(
        type="pbl", severity="medium", description="End-user IP range that should not send mail directly (Spamhaus maintained)"
    ),
}
_SPAMHAUS_DBL_CODES = {
    "127.0.1.2": CodeInfo(type="spam", severity="high", description="Spam domain"),
    "127.0.1.4": CodeInfo(type="phish", severity="critical", description="Phishing domain"),
    "127.0.1.5": CodeInfo(type="malware", severity="critical", description="Malware domain"),
    "127.0.1.6": CodeInfo(type="botnet", severity="critical", description="Botnet C&C domain"),
    "127.0.1.102": CodeInfo(type="abused-legit", severity="medium", description="Abused legitimate spam domain"),
    "127.0.1.103": CodeInfo(type="abused-redirector", severity="medium", description="Abused spammed redirector domain"),
    "127.0.1.104": CodeInfo(type="abused-legit", severity="high", description="Abused legitimate phishing domain"),
    "127.0.1.105": CodeInfo(type="abused-legit", severity="high", description="Abused legitimate malware domain"),
    "127.0.1.106": CodeInfo(type="abused-legit", severity="high", description="Abused legitimate botnet C&C domain"),
}

RETURN_CODES: Dict[str, Dict[str, CodeInfo]] = {
    "sbl.spamhaus.org": {**_SPAMHAUS_IP_CODES, **_SPAMHAUS_ERRORS},
    "xbl.spamhaus.org": {
        **{code: _SPAMHAUS_IP_CODES["127.0.0.4"] for code in ("127.0.0.4", "127.0.0.5", "127.0.0.6", "127.0.0.7")},
        **_SPAMHAUS_ERRORS,
    },
    "pbl.spamhaus.org": {**_SPAMHAUS_IP_CODES, **_SPAMHAUS_ERRORS},
    "dbl.spamhaus.org": {**_SPAMHAUS_DBL_CODES, **_SPAMHAUS_ERRORS},
    "multi.uribl.com": {
        "127.0.0.1": CodeInfo(
            type="error", severity="info", description="Query refused (public resolver or over quota)"
        ),
        "127.0.0.2": CodeInfo(type="black", severity="high", description="Listed on URIBL black"),
        "127.0.0.4": CodeInfo(type="grey", severity="medium", description="Listed on URIBL grey"),
        "127.0.0.8": CodeInfo(type="red", severity="high", description="Listed on URIBL red"),
    },
}


def interpret_return_code(zone: str, code: str) -> Optional[CodeInfo]:
    return RETURN_CODES.get(zone, {}).get(code)


def providers_for(
    check_type: CheckType, providers: Sequence[BlacklistProvider] = BLACKLIST_PROVIDERS
) -> List[BlacklistProvider]:
    return [p for p in providers if p.check_type == check_type]


def build_query_name(
    provider: BlacklistProvider, ip: Optional[str] = None, domain: Optional[str] = None
) -> str:
    if provider.check_type == CheckType.IP:
        if not ip:
            raise ValueError(f"{provider.name} checks IPs, no IP given")
        return f"{reverse_ip(ip)}.{provider.zone}"
    if not domain:
        raise ValueError(f"{provider.name} checks domains, no domain given")
    return f"{blacklist_domain(domain)}.{provider.zone}"


async def probe_provider(
    provider: BlacklistProvider, query_name: str, resolver: DnsResolver
) -> BlacklistCheckResult:
    result = await resolver.lookup(query_name, "A")

    if result.failed:
        # could not check: reported as unknown, not as clean
        logger.warning(
            "DNSBL lookup failed, listing unknown",
            provider=provider.name,
            query=query_name,
            error=result.error,
        )
        return _result(provider, query_name, ListingStatus.UNKNOWN, error=result.error)

    if not result.values:
        logger.debug("DNSBL clean", provider=provider.name, query=query_name)
        return _result(provider, query_name, ListingStatus.CLEAN)

    return_code = result.values[0]
    code_info = interpret_return_code(provider.zone, return_code)
    if code_info is not None and code_info.type == "error":
        logger.warning(
            "DNSBL refused query, listing unknown",
            provider=provider.name,
            query=query_name,
            return_code=return_code,
        )
        return _result(
            provider,
            query_name,
            ListingStatus.UNKNOWN,
            return_code=return_code,
            code_info=code_info,
            error=code_info.description,
        )

    logger.info(
        "DNSBL listed", provider=provider.name, query=query_name, return_code=return_code
    )
    return _result(
        provider, query_name, ListingStatus.LISTED, return_code=return_code, code_info=code_info
    )


def _result(
    provider: BlacklistProvider, query_name: str, status: ListingStatus, **kwargs
) -> BlacklistCheckResult:
    return BlacklistCheckResult(
        provider=provider.name,
        zone=provider.zone,
        check_type=provider.check_type,
        query_name=query_name,
        is_listed=status == ListingStatus.LISTED,
        weight=provider.weight,
        status=status,
        **kwargs,
    )


async def check_blacklists(
    resolver: DnsResolver,
    ip: Optional[str] = None,
    domain: Optional[str] = None,
    providers: Sequence[BlacklistProvider] = BLACKLIST_PROVIDERS,
) -> List[BlacklistCheckResult]:
    """Probe every applicable provider concurrently.

    IP providers run only when ``ip`` is given, domain providers only when
    ``domain`` is given. Each result carries its provider name; callers must
    not rely on the order.
    """
    probes = []
    if ip:
        probes += [
            probe_provider(p, build_query_name(p, ip=ip), resolver)
            for p in providers_for(CheckType.IP, providers)
        ]
    if domain:
        probes += [
            probe_provider(p, build_query_name(p, domain=domain), resolver)
            for p in providers_for(CheckType.DOMAIN, providers)
        ]

    results = list(await asyncio.gather(*probes))
    logger.info(
        "Blacklist check finished",
        ip=ip,
        domain=domain,
        checked=len(results),
        listed=sum(r.is_listed for r in results),
    )
    return results


def summarize(results: Sequence[BlacklistCheckResult]) -> BlacklistSummary:
    listed = sum(1 for r in results if r.status == ListingStatus.LISTED)
    unknown = sum(1 for r in results if r.status == ListingStatus.UNKNOWN)
    if listed == 0:
        status = SummaryStatus.CLEAN
    elif listed > CRITICAL_LISTING_COUNT:
        status = SummaryStatus.CRITICAL
    else:
        status = SummaryStatus.WARNING
    return BlacklistSummary(
        total_checks=len(results),
        listed_count=listed,
        clean_count=len(results) - listed - unknown,
        unknown_count=unknown,
        status=status,
    )
