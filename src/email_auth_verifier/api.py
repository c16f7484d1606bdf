from functools import lru_cache
from typing import List, Optional, Union

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException

from . import dns_utils
from .config import settings
from .core import (
    InvalidRequestError,
    build_request,
    check_blacklist_report,
    check_dkim_selectors,
    verify,
    verify_dns,
)
from .dns_utils import DnsResolver
from .models import (
    BlacklistReport,
    DkimVerdict,
    DmarcRecordReport,
    DnsAuthenticationReport,
    SpfBreakdown,
    SpfRecordReport,
    VerificationReport,
)
from .records import analyze_dmarc, analyze_spf, parse_dmarc, parse_spf

logger = structlog.get_logger()

app = FastAPI(title=settings.app_name, version=settings.version)


class RequestBody(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VerifyDnsRequest(RequestBody):
    domain: Optional[str] = None
    dkim_selector: str = "google"


class CheckBlacklistRequest(RequestBody):
    ip: Optional[str] = None
    domain: Optional[str] = None


class VerifyRequest(RequestBody):
    domain: Optional[str] = None
    dkim_selectors: Union[str, List[str], None] = None
    ip: Optional[str] = None
    check_domain_blacklists: bool = True


@lru_cache()
def get_resolver() -> DnsResolver:
    return DnsResolver()


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", path=request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


@app.get("/health")
async def health():
    """Simple health check endpoint."""
    return {"status": "ok", "service": settings.app_name}


@app.post("/verify-dns", response_model=DnsAuthenticationReport)
async def post_verify_dns(
    body: VerifyDnsRequest, resolver: DnsResolver = Depends(get_resolver)
):
    """SPF/DKIM/DMARC verification; ``dkimSelector`` may be comma-separated."""
    if not body.domain:
        raise InvalidRequestError("Domain is required")
    req = build_request(domain=body.domain, dkim_selectors=body.dkim_selector)
    with dns_utils.deadline(settings.deadline_seconds):
        return await verify_dns(req.domain, req.dkim_selectors, resolver)


@app.post("/check-blacklist", response_model=BlacklistReport)
async def post_check_blacklist(
    body: CheckBlacklistRequest, resolver: DnsResolver = Depends(get_resolver)
):
    with dns_utils.deadline(settings.deadline_seconds):
        return await check_blacklist_report(resolver, ip=body.ip, domain=body.domain)


@app.post("/verify", response_model=VerificationReport)
async def post_verify(body: VerifyRequest, resolver: DnsResolver = Depends(get_resolver)):
    """Full report: authentication, blacklists and reputation."""
    if not body.domain:
        raise InvalidRequestError("Domain is required")
    req = build_request(
        domain=body.domain,
        dkim_selectors=body.dkim_selectors,
        ip=body.ip,
        check_domain_blacklists=body.check_domain_blacklists,
    )
    return await verify(req, resolver=resolver)


@app.get("/spf/{domain}", response_model=SpfRecordReport)
async def get_spf(domain: str, resolver: DnsResolver = Depends(get_resolver)):
    """Return the SPF verdict for a domain."""
    domain = build_request(domain=domain).domain
    result = await resolver.lookup(domain, "TXT")
    verdict = analyze_spf(result.values)
    details = SpfBreakdown(**parse_spf(verdict.record)) if verdict.record else None
    return SpfRecordReport(**verdict.model_dump(), details=details)


@app.get("/dkim/{domain}", response_model=DkimVerdict)
async def get_dkim(
    domain: str,
    selector: Optional[str] = Query(None),
    resolver: DnsResolver = Depends(get_resolver),
):
    """Return the DKIM verdict for one or more comma-separated selectors."""
    req = build_request(domain=domain, dkim_selectors=selector)
    return await check_dkim_selectors(req.domain, req.dkim_selectors, resolver)


@app.get("/dmarc/{domain}", response_model=DmarcRecordReport)
async def get_dmarc(domain: str, resolver: DnsResolver = Depends(get_resolver)):
    """Return the DMARC verdict for a domain."""
    domain = build_request(domain=domain).domain
    result = await resolver.lookup(f"_dmarc.{domain}", "TXT")
    verdict = analyze_dmarc(result.values)
    tags = parse_dmarc(verdict.record) if verdict.record else {}
    return DmarcRecordReport(**verdict.model_dump(), tags=tags)


def serve():
    """Run the API with uvicorn using the configured host and port."""
    import uvicorn

    from .logging import configure_logging

    configure_logging(
        {"root": {"level": settings.log_level}}, debug=False, formatter=settings.log_format
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
