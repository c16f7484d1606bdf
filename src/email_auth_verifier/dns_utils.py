import ipaddress
import re
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple, Union

import dns.asyncresolver
import dns.exception
import dns.resolver
import structlog

from .config import settings

logger = structlog.get_logger()

RECORD_TYPES = ("TXT", "A")

# monotonic timestamp after which no further lookups are attempted
_deadline: ContextVar[Optional[float]] = ContextVar("dns_deadline", default=None)


class DnsTransportError(Exception):
    """The resolver could not be asked or did not answer in time.

    Distinct from NXDOMAIN/no-answer, which are ordinary empty answers.
    """

    def __init__(self, name: str, record_type: str, reason: str):
        super().__init__(f"{record_type} lookup for {name} failed: {reason}")
        self.name = name
        self.record_type = record_type
        self.reason = reason


@dataclass(frozen=True)
class RawDnsAnswer:
    queried_name: str
    record_type: str
    values: Tuple[str, ...] = ()


@dataclass(frozen=True)
class LookupResult:
    """Outcome of a single lookup: either an answer (possibly empty) or an error."""

    queried_name: str
    record_type: str
    answer: Optional[RawDnsAnswer] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def values(self) -> Tuple[str, ...]:
        return self.answer.values if self.answer else ()


@contextmanager
def deadline(seconds: Optional[float]) -> Iterator[None]:
    """Bound every lookup issued within the block (and tasks spawned from it)."""
    if seconds is None:
        yield
        return
    token = _deadline.set(time.monotonic() + seconds)
    try:
        yield
    finally:
        _deadline.reset(token)


def remaining_time() -> Optional[float]:
    expires = _deadline.get()
    if expires is None:
        return None
    return expires - time.monotonic()


def make_backend(nameservers: Sequence[str], timeout: float) -> dns.asyncresolver.Resolver:
    if nameservers:
        backend = dns.asyncresolver.Resolver(configure=False)
        # dnspython turns https:// URLs into DNS-over-HTTPS nameservers
        backend.nameservers = list(nameservers)
    else:
        backend = dns.asyncresolver.Resolver()
    backend.lifetime = timeout
    backend.timeout = timeout
    return backend


@dataclass
class DnsResolver:
    """Thin TXT/A lookup client over dnspython's async resolver."""

    backend: dns.asyncresolver.Resolver = field(
        default_factory=lambda: make_backend(
            settings.resolver_nameservers, settings.dns_timeout
        )
    )
    timeout: float = settings.dns_timeout

    async def query(self, name: str, record_type: str = "TXT") -> RawDnsAnswer:
        """Return the answer for ``name``; empty values for NXDOMAIN/no answer.

        Raises DnsTransportError when the lookup itself fails.
        """
        if record_type not in RECORD_TYPES:
            raise ValueError(f"unsupported record type: {record_type}")

        lifetime = self.timeout
        remaining = remaining_time()
        if remaining is not None:
            if remaining <= 0:
                raise DnsTransportError(name, record_type, "request deadline exceeded")
            lifetime = min(lifetime, remaining)

        try:
            answers = await self.backend.resolve(
                name, record_type, lifetime=lifetime, raise_on_no_answer=False
            )
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return RawDnsAnswer(name, record_type, ())
        except dns.exception.Timeout as e:
            raise DnsTransportError(name, record_type, "timeout") from e
        except dns.exception.DNSException as e:
            raise DnsTransportError(name, record_type, str(e) or type(e).__name__) from e

        if answers.rrset is None:
            return RawDnsAnswer(name, record_type, ())
        if record_type == "TXT":
            values = tuple(_txt_to_text(r) for r in answers.rrset)
        else:
            values = tuple(r.address for r in answers.rrset)
        return RawDnsAnswer(name, record_type, values)

    async def lookup(self, name: str, record_type: str = "TXT") -> LookupResult:
        """Like query(), but folds transport failures into the result."""
        try:
            answer = await self.query(name, record_type)
        except DnsTransportError as e:
            logger.warning(
                "DNS lookup failed", name=name, record_type=record_type, error=e.reason
            )
            return LookupResult(name, record_type, error=e.reason)
        logger.debug(
            "DNS lookup", name=name, record_type=record_type, answers=len(answer.values)
        )
        return LookupResult(name, record_type, answer=answer)


def _txt_to_text(rdata) -> str:
    # a TXT record may be split into several character-strings
    return b"".join(rdata.strings).decode("utf-8", errors="replace")


# ---------- input normalisation ----------

SCHEME_RE = re.compile(r"^https?://", re.I)


def normalize_domain(domain: str) -> str:
    """Strip scheme and path/query, lowercase: ``https://Ex.com/x`` -> ``ex.com``."""
    cleaned = SCHEME_RE.sub("", domain.strip())
    cleaned = re.split(r"[/?#]", cleaned, maxsplit=1)[0]
    return cleaned.strip().rstrip(".").lower()


def blacklist_domain(domain: str) -> str:
    """Domain form used for DNSBL queries; additionally drops a leading ``www.``."""
    cleaned = normalize_domain(domain)
    if cleaned.startswith("www."):
        cleaned = cleaned[4:]
    return cleaned


def validate_ipv4(ip: str) -> str:
    """Return the dotted-quad form of ``ip``; raises ValueError for anything else."""
    return str(ipaddress.IPv4Address(ip.strip()))


def reverse_ip(ip: str) -> str:
    return ".".join(reversed(ip.split(".")))


def parse_selectors(
    selectors: Union[str, Sequence[str], None], default: Optional[Sequence[str]] = None
) -> List[str]:
    """Trim, drop empties and de-duplicate (keeping order); comma-joined strings allowed."""
    if selectors is None:
        raw: List[str] = []
    elif isinstance(selectors, str):
        raw = selectors.split(",")
    else:
        raw = [part for s in selectors for part in s.split(",")]

    result: List[str] = []
    for s in raw:
        s = s.strip()
        if s and s not in result:
            result.append(s)
    if not result:
        result = list(default if default is not None else settings.default_dkim_selectors)
    return result
