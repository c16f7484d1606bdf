import asyncio
from typing import Dict, Iterable, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

from email_auth_verifier.dns_utils import (
    DnsResolver,
    DnsTransportError,
    RawDnsAnswer,
    remaining_time,
)

GOOD_SPF = "v=spf1 include:_spf.google.com ~all"
GOOD_DKIM = "v=DKIM1; k=rsa; p=MIGfMA0GCSqGSIb3DQEBAQUAA4GNADCBiQKBgQC"
GOOD_DMARC = "v=DMARC1; p=reject; rua=mailto:d@example.com"


class FakeResolver(DnsResolver):
    """Serves canned answers keyed by (name, record type).

    Names listed in ``failures`` raise DnsTransportError, names in ``delays``
    answer late and time out once the request deadline passes.
    """

    # pylint: disable=super-init-not-called
    def __init__(
        self,
        records: Optional[Dict[Tuple[str, str], Iterable[str]]] = None,
        failures: Optional[Dict[str, str]] = None,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.backend = MagicMock()
        self.timeout = 5.0
        self.records = dict(records or {})
        self.failures = dict(failures or {})
        self.delays = dict(delays or {})
        self.queries: List[Tuple[str, str]] = []

    def add(self, name: str, record_type: str, *values: str) -> "FakeResolver":
        self.records[(name, record_type)] = values
        return self

    async def query(self, name: str, record_type: str = "TXT") -> RawDnsAnswer:
        self.queries.append((name, record_type))
        delay = self.delays.get(name)
        if delay:
            remaining = remaining_time()
            if remaining is not None and remaining < delay:
                await asyncio.sleep(max(remaining, 0))
                raise DnsTransportError(name, record_type, "timeout")
            await asyncio.sleep(delay)
        if name in self.failures:
            raise DnsTransportError(name, record_type, self.failures[name])
        return RawDnsAnswer(name, record_type, tuple(self.records.get((name, record_type), ())))


@pytest.fixture(name="resolver")
def fixture_resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture(name="example_com")
def fixture_example_com() -> FakeResolver:
    """example.com with valid SPF, a valid ``google`` DKIM key and p=reject DMARC."""
    return (
        FakeResolver()
        .add("example.com", "TXT", GOOD_SPF, "google-site-verification=abc")
        .add("google._domainkey.example.com", "TXT", GOOD_DKIM)
        .add("_dmarc.example.com", "TXT", GOOD_DMARC)
    )
