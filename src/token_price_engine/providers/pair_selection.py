"""DEX pair selection and aggregation.

A ticker search on a pair index returns pairs for many unrelated tokens
that happen to share a symbol. Selection groups the candidate pairs by
base-token identity and picks the group with the highest summed 24h
volume. Liquidity never decides between groups.

Within the winning group the most liquid pair supplies the price and
metadata, and the reported 24h volume is summed over the top N pairs by
liquidity.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from token_price_engine.providers.models import ResolvedPair, normalize_reference, normalize_symbol

DEFAULT_TOP_PAIRS = 20


@dataclass(frozen=True)
class PairFilter:
    """Minimum thresholds a pair must meet to be considered."""

    min_liquidity_usd: float = 0.0
    min_volume_usd: float = 0.0
    min_pair_age_hours: float = 0.0

    def accepts(self, pair: ResolvedPair, now: datetime) -> bool:
        if pair.liquidity_usd < self.min_liquidity_usd:
            return False
        if pair.volume_24h_usd < self.min_volume_usd:
            return False
        if self.min_pair_age_hours > 0 and pair.created_at is not None:
            if now - pair.created_at < timedelta(hours=self.min_pair_age_hours):
                return False
        return True


@dataclass(frozen=True)
class PairGroup:
    """Pairs sharing one base token."""

    identity: str
    pairs: tuple[ResolvedPair, ...]

    @property
    def total_volume_24h(self) -> float:
        return sum(p.volume_24h_usd for p in self.pairs)


@dataclass(frozen=True)
class AggregatedPair:
    """Result of selecting and aggregating a pair group."""

    reference: ResolvedPair
    volume_24h_usd: float
    pair_count: int


def prefer_symbol_matches(pairs: Sequence[ResolvedPair], symbol: str) -> list[ResolvedPair]:
    """Keep pairs whose base symbol matches; fall back to all pairs."""
    wanted = normalize_symbol(symbol)
    matched = [p for p in pairs if normalize_symbol(p.base_symbol) == wanted]
    return matched or list(pairs)


def prefer_address_matches(pairs: Sequence[ResolvedPair], address: str) -> list[ResolvedPair]:
    """Keep pairs whose base token is the address; fall back to all pairs."""
    wanted = normalize_reference(address)
    matched = [p for p in pairs if normalize_reference(p.base_address) == wanted]
    return matched or list(pairs)


def apply_filter(
    pairs: Sequence[ResolvedPair], pair_filter: PairFilter, now: datetime
) -> list[ResolvedPair]:
    """Drop pairs below the thresholds unless that would drop every pair."""
    kept = [p for p in pairs if pair_filter.accepts(p, now)]
    return kept or list(pairs)


def group_pairs(pairs: Iterable[ResolvedPair]) -> list[PairGroup]:
    """Group pairs by base-token identity, preserving first-seen order."""
    grouped: dict[str, list[ResolvedPair]] = {}
    for pair in pairs:
        grouped.setdefault(pair.identity, []).append(pair)
    return [PairGroup(identity=k, pairs=tuple(v)) for k, v in grouped.items()]


def select_group(groups: Sequence[PairGroup]) -> PairGroup | None:
    """Pick the group with the highest summed 24h volume.

    Ties keep the first group in input order.
    """
    best: PairGroup | None = None
    for group in groups:
        if best is None or group.total_volume_24h > best.total_volume_24h:
            best = group
    return best


def aggregate_group(group: PairGroup, top_n: int = DEFAULT_TOP_PAIRS) -> AggregatedPair:
    """Aggregate the top ``top_n`` pairs of a group by liquidity."""
    top = sorted(group.pairs, key=lambda p: p.liquidity_usd, reverse=True)[:top_n]
    return AggregatedPair(
        reference=top[0],
        volume_24h_usd=sum(p.volume_24h_usd for p in top),
        pair_count=len(top),
    )


def select_pair(
    pairs: Sequence[ResolvedPair],
    *,
    now: datetime,
    symbol: str | None = None,
    address: str | None = None,
    pair_filter: PairFilter | None = None,
    top_n: int = DEFAULT_TOP_PAIRS,
) -> AggregatedPair | None:
    """Run the full selection over candidate pairs.

    Args:
        pairs: Candidate pairs from the index.
        now: Current time, for the pair-age threshold.
        symbol: Ticker the user searched for, if any.
        address: Token address the user searched for, if any.
        pair_filter: Thresholds; None disables filtering.
        top_n: Number of most liquid pairs aggregated.

    Returns:
        The aggregated result, or None when there are no candidates.
    """
    if not pairs:
        return None
    if len(pairs) == 1:
        return AggregatedPair(reference=pairs[0], volume_24h_usd=pairs[0].volume_24h_usd, pair_count=1)

    candidates = list(pairs)
    if address:
        candidates = prefer_address_matches(candidates, address)
    elif symbol:
        candidates = prefer_symbol_matches(candidates, symbol)
    if pair_filter is not None:
        candidates = apply_filter(candidates, pair_filter, now)

    group = select_group(group_pairs(candidates))
    if group is None:
        return None
    return aggregate_group(group, top_n)
