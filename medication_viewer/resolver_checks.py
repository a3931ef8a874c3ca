"""
Resolver checks
Known medication descriptions with their expected resolver outcome, used to
eyeball the resolver service against real data
"""

import time
from typing import Optional, List
from loguru import logger
from pydantic import BaseModel, Field

from .exceptions import ResolverError
from .models import ResolveResponse
from .resolver_client import ResolverClient


ROUTE_HINTS = ['ORAL', 'IV', 'IM', 'SUBQ', 'TOPICAL', 'RECTAL', 'NASAL', 'INHALATION']
FORM_HINTS = ['tablet', 'capsule', 'solution', 'cream', 'injection', 'patch', 'suppository']


class ResolverCheck(BaseModel):
    """Expected resolver outcome for one description"""

    id: str = Field(..., description="Check id")
    text: str = Field(..., description="Text sent to the resolver")
    route_hint: Optional[str] = Field(None, description="Route hint")
    form_hint: Optional[str] = Field(None, description="Form hint")
    expected_resolved: bool = Field(..., description="Whether the text should resolve")
    expected_rxcui: Optional[str] = Field(None, description="Exact RxCUI expected, if pinned")
    min_confidence: Optional[float] = Field(None, description="Lowest acceptable confidence")
    description: str = Field("", description="What the check covers")


class CheckResult(BaseModel):
    """Outcome of running one check"""

    check: ResolverCheck
    status: str = Field(..., description="passed, failed or error")
    response: Optional[ResolveResponse] = None
    error: Optional[str] = None
    duration: float = Field(0.0, description="Seconds spent on the request")


DEFAULT_CHECKS: List[ResolverCheck] = [
    ResolverCheck(id='default-1', text='prednisone 20 mg oral tablet', expected_resolved=True,
                  expected_rxcui='312615', min_confidence=0.70,
                  description='Common corticosteroid'),
    ResolverCheck(id='default-2', text='metformin 500 mg', route_hint='ORAL', expected_resolved=True,
                  expected_rxcui='861007', min_confidence=0.70,
                  description='Diabetes medication with route hint'),
    ResolverCheck(id='default-3', text='lisinopril 10 mg tablet', expected_resolved=True,
                  expected_rxcui='314076', min_confidence=0.70,
                  description='ACE inhibitor'),
    ResolverCheck(id='default-4', text='aspirin 325 mg', expected_resolved=True, min_confidence=0.70,
                  description='Common OTC analgesic'),
    ResolverCheck(id='default-5', text='amoxicillin 500 mg capsule', form_hint='capsule',
                  expected_resolved=True, min_confidence=0.70,
                  description='Antibiotic with form hint'),
    ResolverCheck(id='default-6', text='omeprazole 20 mg', route_hint='ORAL', form_hint='capsule',
                  expected_resolved=True, min_confidence=0.70,
                  description='PPI with route and form hints'),
    ResolverCheck(id='default-7', text='unknown xyz 999 mg', expected_resolved=False,
                  description='Invalid medication'),
    ResolverCheck(id='default-8', text='gibberish medication name', expected_resolved=False,
                  description='Nonsense text'),
    ResolverCheck(id='brand-1', text='LORazepam 1 mg tablet (ATIVAN)', expected_resolved=True,
                  min_confidence=0.70, description='Tall man lettering with brand name'),
    ResolverCheck(id='brand-2', text='LIPITOR 20 mg tablet', expected_resolved=True, min_confidence=0.70,
                  description='Atorvastatin brand name'),
    ResolverCheck(id='brand-2b', text='atorvastatin 10 mg oral tablet', expected_resolved=True,
                  expected_rxcui='617312', min_confidence=0.70,
                  description='Generic atorvastatin'),
    ResolverCheck(id='brand-3', text='Zoloft 50 mg tablet', expected_resolved=True, min_confidence=0.70,
                  description='Sertraline brand name'),
    ResolverCheck(id='tablet-1', text='ibuprofen 200 mg tablet', expected_resolved=True,
                  min_confidence=0.70, description='NSAID tablet'),
    ResolverCheck(id='tablet-3', text='gabapentin 300 mg tablet', expected_resolved=True,
                  min_confidence=0.70, description='Should prefer tablet over capsule'),
    ResolverCheck(id='liquid-1', text='amoxicillin 50 mg/mL suspension', expected_resolved=True,
                  min_confidence=0.70, description='Oral suspension'),
    ResolverCheck(id='liquid-3', text='acetaminophen 32 mg/mL oral solution', expected_resolved=True,
                  min_confidence=0.70, description='Pediatric oral solution'),
]


def evaluate_check(check: ResolverCheck, response: ResolveResponse) -> bool:
    """True if the response meets every expectation of the check"""
    if check.expected_resolved != response.resolved:
        return False
    if check.expected_rxcui and response.rxcui != check.expected_rxcui:
        return False
    if check.min_confidence and response.confidence and response.confidence < check.min_confidence:
        return False
    return True


def run_check(client: ResolverClient, check: ResolverCheck) -> CheckResult:
    start_time = time.time()
    try:
        response = client.resolve(
            check.text,
            route_hint=check.route_hint,
            form_hint=check.form_hint,
            debug=True
        )
    except ResolverError as e:
        logger.warning(f"Resolver check {check.id} errored: {e}")
        return CheckResult(check=check, status="error", error=str(e),
                           duration=time.time() - start_time)

    status = "passed" if evaluate_check(check, response) else "failed"
    logger.debug(f"Resolver check {check.id} {status}: {response}")
    return CheckResult(check=check, status=status, response=response,
                       duration=time.time() - start_time)


def run_checks(client: ResolverClient, checks: Optional[List[ResolverCheck]] = None) -> List[CheckResult]:
    """Run checks one after another"""
    results = [run_check(client, check) for check in (checks or DEFAULT_CHECKS)]
    passed = sum(1 for r in results if r.status == "passed")
    logger.info(f"Resolver checks: {passed}/{len(results)} passed")
    return results
