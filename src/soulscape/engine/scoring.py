"""Attribute scoring: transaction history -> AttributeVector -> Stage.

Pure functions with no I/O. Every score is a weighted sum of ratios, each
ratio clamped to [0, 1] before weighting, then scaled to [0, 100].
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from soulscape.model.spirit import DORMANT_VECTOR, AttributeVector, Stage

# Normalisation horizons
OUTGOING_SATURATION = 50
CONTRACT_CALL_SATURATION = 20
AVG_VALUE_SATURATION = 5.0  # ether
TX_COUNT_SATURATION = 200
PEER_SATURATION = 100
CHAOS_VARIANCE_SCALE = 24 * 60 * 60

# Stage thresholds
ASCENDED_INFLUENCE = 70
ASCENDED_CONNECTIVITY = 60
WILD_AGGRESSION = 50
WILD_CHAOS = 50


def clamp01(x: float) -> float:
    """Clamp to the unit interval."""
    return max(0.0, min(1.0, x))


@dataclass(frozen=True)
class TransactionFeatures:
    """Raw counts extracted from a transaction list before weighting."""

    total: int
    outgoing: int
    contract_calls: int
    transfers: int
    unique_peers: int
    avg_outgoing_value: float | None
    delta_mean: float
    delta_variance: float


def extract_features(transactions: Sequence, address: str) -> TransactionFeatures:
    """Count the behavioural features of ``address`` in ``transactions``.

    Args:
        transactions: TransactionRecord list, in any order.
        address: Subject address (any case).

    Returns:
        TransactionFeatures for the subject.
    """
    subject = address.lower()

    outgoing = [tx for tx in transactions if tx.sender == subject]

    peers: set[str] = set()
    for tx in transactions:
        if tx.sender == subject and tx.recipient:
            peers.add(tx.recipient)
        if tx.recipient == subject:
            peers.add(tx.sender)

    contract_calls = sum(1 for tx in outgoing if tx.has_call_data)

    values = [tx.value_ether for tx in outgoing if tx.value_ether is not None]
    avg_value = sum(values) / len(values) if values else None

    timestamps = sorted(tx.timestamp for tx in transactions)
    deltas = [b - a for a, b in zip(timestamps, timestamps[1:])]
    mean = sum(deltas) / len(deltas) if deltas else 0.0
    if deltas and mean:
        variance = sum((d - mean) ** 2 for d in deltas) / len(deltas)
    else:
        variance = 0.0

    return TransactionFeatures(
        total=len(transactions),
        outgoing=len(outgoing),
        contract_calls=contract_calls,
        transfers=len(outgoing) - contract_calls,
        unique_peers=len(peers),
        avg_outgoing_value=avg_value,
        delta_mean=mean,
        delta_variance=variance,
    )


def score_features(features: TransactionFeatures) -> AttributeVector:
    """Apply the weighted formulas to extracted features."""
    outgoing_ratio = clamp01(features.outgoing / OUTGOING_SATURATION)

    aggression = 0.5 * outgoing_ratio + 0.3 * clamp01(
        features.contract_calls / CONTRACT_CALL_SATURATION
    )
    if features.avg_outgoing_value is not None:
        aggression += 0.2 * clamp01(features.avg_outgoing_value / AVG_VALUE_SATURATION)

    serenity = 0.6 * clamp01(features.transfers / max(1, features.outgoing)) + 0.4 * (
        1 - outgoing_ratio
    )
    chaos = clamp01(features.delta_variance / CHAOS_VARIANCE_SCALE)
    peer_ratio = clamp01(features.unique_peers / PEER_SATURATION)
    influence = 0.6 * clamp01(features.total / TX_COUNT_SATURATION) + 0.4 * peer_ratio

    return AttributeVector.clamped(
        aggression=100 * aggression,
        serenity=100 * serenity,
        chaos=100 * chaos,
        influence=100 * influence,
        connectivity=100 * peer_ratio,
    )


def compute_attributes(transactions: Sequence, address: str) -> AttributeVector:
    """Derive the personality vector of ``address`` from its history.

    An empty history yields the dormant-account baseline
    (10, 60, 10, 5, 5).
    """
    if not transactions:
        return DORMANT_VECTOR
    return score_features(extract_features(transactions, address))


def derive_stage(vector: AttributeVector) -> Stage:
    """Classify a vector. Depends on nothing but the vector itself."""
    if vector.influence > ASCENDED_INFLUENCE and vector.connectivity > ASCENDED_CONNECTIVITY:
        return Stage.ASCENDED
    if vector.aggression > WILD_AGGRESSION or vector.chaos > WILD_CHAOS:
        return Stage.WILD
    return Stage.SEED
