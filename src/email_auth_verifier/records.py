"""
Pure analysis of SPF, DKIM and DMARC TXT records.

Every function here takes raw TXT strings and returns a verdict; none of them
touch the network and none of them raise for malformed input. Problems with a
record are reported through ``issues``/``recommendations``.
"""

import re
from typing import Collection, Dict, Iterable, List, Optional, Sequence

from .config import settings
from .models import DkimSelectorVerdict, DkimVerdict, DmarcVerdict, SpfVerdict

# ---------- SPF ----------

SPF_PREFIX = "v=spf1"
SPF_DNS_LOOKUP_LIMIT = 10
SPF_TERMINAL_ALL = ("~all", "-all", "?all")

SPF_INCLUDE_RE = re.compile(r"\binclude:([^\s]+)", re.I)
SPF_REDIRECT_RE = re.compile(r"\bredirect=([^\s]+)", re.I)
SPF_ALL_RE = re.compile(r"(?:^|\s)([~+?-]?all)(?=\s|$)", re.I)
# mechanisms that cost a DNS lookup when the record is evaluated
SPF_LOOKUP_RE = re.compile(r"include:|a:|mx:|ptr:|redirect=")


def parse_spf(spf_text: str) -> Dict:
    """Break an SPF string into includes, redirect, lookup mechanisms and 'all'."""
    includes = SPF_INCLUDE_RE.findall(spf_text)
    redirect = SPF_REDIRECT_RE.findall(spf_text)
    all_match = SPF_ALL_RE.search(spf_text)
    return {
        "raw": spf_text,
        "includes": includes,
        "redirect": redirect[0] if redirect else None,
        "lookup_mechanisms": SPF_LOOKUP_RE.findall(spf_text),
        "all_mechanism": all_match.group(1) if all_match else None,
    }


def analyze_spf(values: Iterable[str]) -> SpfVerdict:
    spf_records = [v for v in values if v.startswith(SPF_PREFIX)]

    if not spf_records:
        return SpfVerdict(
            found=False,
            valid=False,
            issues=["No SPF record found"],
            recommendations=[
                "Add an SPF record to authorize your mail servers",
                "Example: v=spf1 include:_spf.google.com ~all",
            ],
        )

    if len(spf_records) > 1:
        return SpfVerdict(
            found=True,
            valid=False,
            record=spf_records[0],
            issues=["Multiple SPF records found - only one is allowed"],
            recommendations=["Merge all SPF records into a single record"],
        )

    spf = spf_records[0]
    issues: List[str] = []
    recommendations: List[str] = []

    if not any(mechanism in spf for mechanism in SPF_TERMINAL_ALL):
        issues.append("SPF record missing 'all' mechanism")
        recommendations.append("Add ~all or -all at the end of your SPF record")

    if "+all" in spf:
        issues.append("SPF uses +all which allows any server to send mail")
        recommendations.append("Change +all to ~all or -all for better security")

    lookups = len(SPF_LOOKUP_RE.findall(spf))
    if lookups > SPF_DNS_LOOKUP_LIMIT:
        issues.append(
            f"SPF exceeds {SPF_DNS_LOOKUP_LIMIT} DNS lookup limit (found {lookups})"
        )
        recommendations.append("Flatten your SPF record or reduce includes")

    return SpfVerdict(
        found=True,
        valid=not issues,
        record=spf,
        issues=issues,
        recommendations=recommendations,
    )


# ---------- DKIM ----------

DKIM_DISPLAY_LENGTH = 100


def parse_tags(record: str) -> Dict[str, str]:
    """Parse a ``k=v; k=v`` tag list (DKIM, DMARC) into a dict with lowercase keys."""
    tags = {}
    for part in record.split(";"):
        if "=" in part:
            k, v = part.split("=", 1)
            tags[k.strip().lower()] = v.strip()
    return tags


def truncate_record(record: str, length: int = DKIM_DISPLAY_LENGTH) -> str:
    return record[:length] + ("..." if len(record) > length else "")


def analyze_dkim_record(selector: str, values: Sequence[str]) -> DkimSelectorVerdict:
    """Validate the TXT answer for ``{selector}._domainkey.{domain}``."""
    if not values:
        return DkimSelectorVerdict(
            selector=selector,
            found=False,
            valid=False,
            issues=[f'No DKIM record found for selector "{selector}"'],
        )

    dkim = values[0]
    tags = parse_tags(dkim)
    issues: List[str] = []

    if "v=DKIM1" not in dkim:
        issues.append("Missing version tag (v=DKIM1)")

    if "p" not in tags:
        issues.append("Missing public key (p=)")
    elif not tags["p"]:
        issues.append("Public key is empty (record may be revoked)")

    return DkimSelectorVerdict(
        selector=selector,
        found=True,
        valid=not issues,
        record=truncate_record(dkim),
        issues=issues,
    )


def summarize_dkim(results: Sequence[DkimSelectorVerdict]) -> DkimVerdict:
    """Fold per-selector verdicts (in request order) into the aggregate verdict."""
    found = [r for r in results if r.found]
    valid = [r for r in results if r.valid]
    issues: List[str] = []
    recommendations: List[str] = []

    if not found:
        issues.append("No DKIM records found for any of the specified selectors")
        recommendations.extend(
            [
                "Configure DKIM signing with your email provider",
                "Verify you're using the correct DKIM selectors for your email services",
            ]
        )
    elif not valid:
        issues.append("DKIM records found but none are valid")
        recommendations.append("Check and fix the issues with your DKIM records")
    elif len(valid) < len(found):
        issues.append(f"{len(found) - len(valid)} DKIM selector(s) have issues")
        recommendations.append("Review and fix invalid DKIM records")

    for r in results:
        if r.found and not r.valid and r.issues:
            issues.append(f"{r.selector}: {', '.join(r.issues)}")

    return DkimVerdict(
        found=bool(found),
        valid=bool(valid),
        selectors=list(results),
        valid_count=len(valid),
        total_checked=len(results),
        issues=issues,
        recommendations=recommendations,
    )


# ---------- DMARC ----------

DMARC_PREFIX = "v=DMARC1"
DMARC_POLICY_RE = re.compile(r"\bp=(\w+)")


def parse_dmarc(dmarc_text: str) -> Dict[str, str]:
    """Parse DMARC record into tag:value dict."""
    return parse_tags(dmarc_text)


def analyze_dmarc(
    values: Iterable[str], enforcing_policies: Optional[Collection[str]] = None
) -> DmarcVerdict:
    if enforcing_policies is None:
        enforcing_policies = settings.dmarc_enforcing_policies
    dmarc_records = [v for v in values if v.startswith(DMARC_PREFIX)]

    if not dmarc_records:
        return DmarcVerdict(
            found=False,
            valid=False,
            issues=["No DMARC record found"],
            recommendations=[
                "Add a DMARC record to protect your domain from spoofing",
                "Start with: v=DMARC1; p=none; rua=mailto:dmarc@yourdomain.com",
            ],
        )

    dmarc = dmarc_records[0]
    issues: List[str] = []
    recommendations: List[str] = []

    match = DMARC_POLICY_RE.search(dmarc)
    policy = match.group(1) if match else None

    if not policy:
        issues.append("DMARC record missing policy (p=)")
        recommendations.append("Add a policy: p=none, p=quarantine, or p=reject")
    elif policy == "none":
        issues.append("DMARC policy is set to 'none' (monitoring only)")
        recommendations.append(
            "Consider upgrading to p=quarantine or p=reject for better protection"
        )

    if "rua=" not in dmarc:
        issues.append("No aggregate reporting email configured")
        recommendations.append("Add rua= to receive DMARC reports")

    if policy == "reject" and "sp=" not in dmarc:
        recommendations.append("Consider adding sp= for subdomain policy")

    return DmarcVerdict(
        found=True,
        valid=policy in enforcing_policies,
        record=dmarc,
        policy=policy,
        issues=issues,
        recommendations=recommendations,
    )
