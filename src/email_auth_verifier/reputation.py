import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .blacklist import PROVIDERS_BY_NAME, SPAMHAUS_LOOKUP_URL
from .models import (
    BlacklistCheckResult,
    CheckType,
    DomainReputation,
    Grade,
    ListingStatus,
    ReputationExample,
    ReputationFactor,
)


@dataclass(frozen=True)
class ReputationFactorSpec:
    """A reputation factor groups blacklist results by provider or check type.

    The factor's penalty is the summed weight of its listed results, capped at
    the factor weight.
    """

    name: str
    weight: int
    providers: Tuple[str, ...] = ()
    check_type: Optional[CheckType] = None

    def matches(self, result: BlacklistCheckResult) -> bool:
        if self.providers:
            return result.provider in self.providers
        return result.check_type == self.check_type


REPUTATION_FACTORS: Tuple[ReputationFactorSpec, ...] = (
    ReputationFactorSpec("Spamhaus DBL", 25, providers=("Spamhaus DBL",)),
    ReputationFactorSpec("SURBL", 20, providers=("SURBL",)),
    ReputationFactorSpec("URIBL", 15, providers=("URIBL",)),
    ReputationFactorSpec("Invaluement", 10, providers=("Invaluement",)),
    ReputationFactorSpec("IP Blacklists", 30, check_type=CheckType.IP),
)

GRADE_THRESHOLDS = ((90, Grade.A), (80, Grade.B), (70, Grade.C), (50, Grade.D))


def grade_for(score: int) -> Grade:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return Grade.F


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _evaluate_factor(
    definition: ReputationFactorSpec, results: Sequence[BlacklistCheckResult]
) -> Tuple[int, ReputationFactor]:
    listed = [r for r in results if r.is_listed]
    if listed:
        penalty = min(definition.weight, sum(r.weight for r in listed))
        if definition.check_type == CheckType.IP:
            description = (
                f"IP listed on {len(listed)} blacklist(s): "
                + ", ".join(r.provider for r in listed)
            )
        else:
            description = f"Domain is listed on {definition.name}"
        return penalty, ReputationFactor(
            name=definition.name, status=ListingStatus.LISTED, impact=-penalty, description=description
        )

    if all(r.status == ListingStatus.UNKNOWN for r in results):
        return 0, ReputationFactor(
            name=definition.name,
            status=ListingStatus.UNKNOWN,
            impact=0,
            description=f"Could not check {definition.name}",
        )

    checked = "IP" if definition.check_type == CheckType.IP else "Domain"
    return 0, ReputationFactor(
        name=definition.name,
        status=ListingStatus.CLEAN,
        impact=0,
        description=f"{checked} not listed on {definition.name}",
    )


def score_reputation(
    results: Sequence[BlacklistCheckResult],
    factors: Sequence[ReputationFactorSpec] = REPUTATION_FACTORS,
) -> DomainReputation:
    """Weighted reputation score (0-100) and grade from blacklist results.

    Only factors with at least one matching result take part. Without any
    applicable factor there is no evidence of a problem and the score is 100.
    """
    total_weight = 0
    penalty_weight = 0
    evaluated: List[ReputationFactor] = []

    for definition in factors:
        matching = [r for r in results if definition.matches(r)]
        if not matching:
            continue
        total_weight += definition.weight
        penalty, factor = _evaluate_factor(definition, matching)
        penalty_weight += penalty
        evaluated.append(factor)

    if total_weight == 0:
        score = 100
    else:
        score = _round_half_up(100 - 100 * penalty_weight / total_weight)
        score = max(0, min(100, score))

    return DomainReputation(score=score, grade=grade_for(score), factors=evaluated)


def reputation_example(
    results: Sequence[BlacklistCheckResult],
    ip: Optional[str] = None,
    domain: Optional[str] = None,
) -> Optional[ReputationExample]:
    """How to verify and get off a list: the first listing, else Spamhaus."""
    chosen = next((r for r in results if r.is_listed), None)
    if chosen is None:
        preferred = "Spamhaus DBL" if domain else "Spamhaus SBL"
        chosen = next((r for r in results if r.provider == preferred), None)
    if chosen is None:
        return None

    provider = PROVIDERS_BY_NAME.get(chosen.provider)
    delisting_url = provider.delisting_url if provider else SPAMHAUS_LOOKUP_URL
    target = ip if chosen.check_type == CheckType.IP else domain
    if chosen.is_listed:
        description = (
            f"{target} is listed on {chosen.provider}. Mail providers consult this list "
            "and may reject or junk your mail until the listing is removed."
        )
    else:
        description = (
            f"{chosen.provider} is a widely used blacklist; mail providers query it "
            f"for every incoming message. {target} is currently not listed."
        )
    return ReputationExample(
        provider=chosen.provider,
        description=description,
        how_to_check=f"dig +short {chosen.query_name} A",
        delisting_url=delisting_url,
    )
