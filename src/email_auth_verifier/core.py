import asyncio
import time
from typing import List, Optional, Sequence, Tuple

import structlog
from pydantic import ValidationError

from . import dns_utils
from .blacklist import check_blacklists, summarize
from .config import settings
from .dns_utils import DnsResolver, LookupResult
from .models import (
    BlacklistCheckResult,
    BlacklistReport,
    DkimSelectorVerdict,
    DkimVerdict,
    DmarcVerdict,
    DnsAuthenticationReport,
    OverallStatus,
    SpfVerdict,
    VerificationReport,
    VerificationRequest,
)
from .records import analyze_dkim_record, analyze_dmarc, analyze_spf, summarize_dkim
from .reputation import reputation_example, score_reputation

logger = structlog.get_logger()

SPF_POINTS = (15, 15)  # (found, valid)
DKIM_POINTS = (15, 20)
DMARC_POINTS = (15, 20)
MAX_SCORE = sum(SPF_POINTS + DKIM_POINTS + DMARC_POINTS)
PASS_THRESHOLD = 80
WARNING_THRESHOLD = 50


class InvalidRequestError(ValueError):
    """The caller's input cannot be checked (missing domain, bad IP, ...)."""


def build_request(**kwargs) -> VerificationRequest:
    """Construct a VerificationRequest, turning validation failures into InvalidRequestError."""
    try:
        return VerificationRequest(**kwargs)
    except ValidationError as e:
        messages = [
            f"{str(err['loc'][0]).capitalize()} is required"
            if err["type"] == "missing"
            else err["msg"].replace("Value error, ", "")
            for err in e.errors()
        ]
        raise InvalidRequestError("; ".join(messages)) from None


def _lookup_failure_issue(result: LookupResult) -> List[str]:
    if result.failed:
        return [f"DNS lookup for {result.queried_name} failed ({result.error}); result may be incomplete"]
    return []


async def check_dkim_selector(
    domain: str, selector: str, resolver: DnsResolver
) -> DkimSelectorVerdict:
    result = await resolver.lookup(f"{selector}._domainkey.{domain}", "TXT")
    verdict = analyze_dkim_record(selector, result.values)
    if result.failed:
        verdict = verdict.model_copy(
            update={"issues": verdict.issues + _lookup_failure_issue(result)}
        )
    return verdict


async def check_dkim_selectors(
    domain: str, selectors: Sequence[str], resolver: DnsResolver
) -> DkimVerdict:
    """Query every selector concurrently; verdicts keep the requested order."""
    results = await asyncio.gather(
        *(check_dkim_selector(domain, s, resolver) for s in selectors)
    )
    return summarize_dkim(results)


def score_authentication(
    spf: SpfVerdict, dkim: DkimVerdict, dmarc: DmarcVerdict
) -> Tuple[int, OverallStatus]:
    score = 0
    for verdict, (found_points, valid_points) in (
        (spf, SPF_POINTS),
        (dkim, DKIM_POINTS),
        (dmarc, DMARC_POINTS),
    ):
        if verdict.found:
            score += found_points
        if verdict.valid:
            score += valid_points

    overall = round(score / MAX_SCORE * 100)
    if overall >= PASS_THRESHOLD:
        status = OverallStatus.PASS
    elif overall >= WARNING_THRESHOLD:
        status = OverallStatus.WARNING
    else:
        status = OverallStatus.FAIL
    return overall, status


async def verify_dns(
    domain: str, selectors: Sequence[str], resolver: DnsResolver
) -> DnsAuthenticationReport:
    """SPF, DMARC and all DKIM selectors are looked up concurrently."""
    logger.info("Checking DNS records", domain=domain, selectors=list(selectors))
    spf_lookup, dmarc_lookup, dkim = await asyncio.gather(
        resolver.lookup(domain, "TXT"),
        resolver.lookup(f"_dmarc.{domain}", "TXT"),
        check_dkim_selectors(domain, selectors, resolver),
    )

    spf = analyze_spf(spf_lookup.values)
    if spf_lookup.failed:
        spf = spf.model_copy(update={"issues": spf.issues + _lookup_failure_issue(spf_lookup)})
    dmarc = analyze_dmarc(dmarc_lookup.values)
    if dmarc_lookup.failed:
        dmarc = dmarc.model_copy(
            update={"issues": dmarc.issues + _lookup_failure_issue(dmarc_lookup)}
        )

    score, status = score_authentication(spf, dkim, dmarc)
    logger.info(
        "DNS authentication checked",
        domain=domain,
        spf_records=len([v for v in spf_lookup.values if v.startswith("v=spf1")]),
        dkim_valid=f"{dkim.valid_count}/{dkim.total_checked}",
        dmarc_policy=dmarc.policy,
        score=score,
        status=status.value,
    )
    return DnsAuthenticationReport(
        spf=spf, dkim=dkim, dmarc=dmarc, overall_score=score, overall_status=status
    )


def _blacklist_report(
    results: List[BlacklistCheckResult], ip: Optional[str], domain: Optional[str]
) -> BlacklistReport:
    reputation = score_reputation(results)
    reputation = reputation.model_copy(
        update={"example": reputation_example(results, ip=ip, domain=domain)}
    )
    return BlacklistReport(results=results, summary=summarize(results), reputation=reputation)


async def check_blacklist_report(
    resolver: DnsResolver, ip: Optional[str] = None, domain: Optional[str] = None
) -> BlacklistReport:
    ip = (ip or "").strip() or None
    domain = dns_utils.blacklist_domain(domain) if domain else None
    if not ip and not domain:
        raise InvalidRequestError("Either IP or domain is required")
    if ip:
        try:
            ip = dns_utils.validate_ipv4(ip)
        except ValueError:
            raise InvalidRequestError(f"Invalid IPv4 address: {ip}") from None

    logger.info("Checking blacklists", ip=ip, domain=domain)
    results = await check_blacklists(resolver, ip=ip, domain=domain)
    return _blacklist_report(results, ip, domain)


async def verify(
    request: VerificationRequest,
    resolver: Optional[DnsResolver] = None,
    deadline_seconds: Optional[float] = None,
) -> VerificationReport:
    """Run the authentication and blacklist branches concurrently under one deadline.

    Lookups still outstanding when the deadline passes fail, and show up as
    not-found / unknown sub-results instead of blocking the report.
    """
    t0 = time.monotonic()
    resolver = resolver or DnsResolver()
    if deadline_seconds is None:
        deadline_seconds = settings.deadline_seconds

    bl_domain = (
        dns_utils.blacklist_domain(request.domain) if request.check_domain_blacklists else None
    )
    with dns_utils.deadline(deadline_seconds):
        authentication, results = await asyncio.gather(
            verify_dns(request.domain, request.dkim_selectors, resolver),
            check_blacklists(resolver, ip=request.ip, domain=bl_domain),
        )

    blacklist = _blacklist_report(results, request.ip, bl_domain)
    elapsed = round(time.monotonic() - t0, 2)
    logger.info(
        "Verification finished",
        domain=request.domain,
        score=authentication.overall_score,
        reputation=blacklist.reputation.score,
        elapsed_seconds=elapsed,
    )
    return VerificationReport(
        domain=request.domain,
        ip=request.ip,
        authentication=authentication,
        blacklist=blacklist.results,
        summary=blacklist.summary,
        reputation=blacklist.reputation,
        elapsed_seconds=elapsed,
    )


def human_report(report: VerificationReport) -> str:
    auth = report.authentication
    lines = []
    lines.append(f"Email authentication report for: {report.domain}")
    if report.ip:
        lines.append(f"Sending IP: {report.ip}")
    lines.append("-" * 60)

    for title, verdict in (("SPF", auth.spf), ("DMARC", auth.dmarc)):
        lines.append(f"{title}: {'valid' if verdict.valid else 'found' if verdict.found else 'missing'}")
        if verdict.record:
            lines.append(f"  - Record: {verdict.record}")
        if title == "DMARC" and verdict.policy:
            lines.append(f"  - Policy: {verdict.policy}")
        for issue in verdict.issues:
            lines.append(f"    ! {issue}")
        for rec in verdict.recommendations:
            lines.append(f"    > {rec}")
        lines.append("")

    lines.append(f"DKIM: {auth.dkim.valid_count}/{auth.dkim.total_checked} selector(s) valid")
    for sel in auth.dkim.selectors:
        state = "valid" if sel.valid else "invalid" if sel.found else "not found"
        lines.append(f"  - Selector: {sel.selector} ({state})")
        if sel.record:
            lines.append(f"    - raw TXT: {sel.record}")
    for issue in auth.dkim.issues:
        lines.append(f"    ! {issue}")
    for rec in auth.dkim.recommendations:
        lines.append(f"    > {rec}")
    lines.append("")

    lines.append(
        f"Blacklists: {report.summary.listed_count} listed, "
        f"{report.summary.clean_count} clean, {report.summary.unknown_count} unknown "
        f"({report.summary.status.value})"
    )
    for r in report.blacklist:
        if r.status.value != "clean":
            detail = r.code_info.description if r.code_info else r.error or ""
            lines.append(f"  - {r.provider}: {r.status.value.upper()} {detail}".rstrip())
    lines.append("")

    lines.append("Summary & score:")
    lines.append(f"  - Authentication score (0-100): {auth.overall_score} ({auth.overall_status.value})")
    lines.append(f"  - Reputation score (0-100): {report.reputation.score} (grade {report.reputation.grade.value})")
    for factor in report.reputation.factors:
        lines.append(f"    - {factor.name}: {factor.status.value} ({factor.impact} pts) {factor.description}")
    lines.append("-" * 60)
    lines.append(f"Elapsed time: {report.elapsed_seconds}s")
    return "\n".join(lines)
