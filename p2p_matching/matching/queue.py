"""Queue-level analytics: supply balance, amount overlap, wait times, bottlenecks."""

from __future__ import annotations

import logging
import math
from collections import Counter
from decimal import Decimal
from typing import Iterable

from p2p_matching.matching.config import QueueConfig
from p2p_matching.matching.models import Queue, QueueOptimization, RequestType

logger = logging.getLogger(__name__)

LOW_SUPPLY_RECOMMENDATION = (
    "Low withdrawal supply - consider increasing incentives for withdrawals"
)
HIGH_SUPPLY_RECOMMENDATION = (
    "High withdrawal supply - consider prioritizing high-value deposits"
)
POOR_OVERLAP_RECOMMENDATION = (
    "Poor amount matching - encourage round number transactions"
)


class QueueOptimizer:
    """Reports on the health of one rail's queue. Never mutates the queue."""

    def __init__(self, config: QueueConfig | None = None):
        self.config = config or QueueConfig()

    @staticmethod
    def demand_supply_ratio(queue: Queue) -> float:
        """Withdrawal count divided by deposit count (0 when there are no deposits)."""
        deposits = len(queue.deposit_queue)
        if deposits == 0:
            return 0.0
        return len(queue.withdrawal_queue) / deposits

    @staticmethod
    def amount_overlap(
        deposit_amounts: Iterable[Decimal], withdrawal_amounts: Iterable[Decimal]
    ) -> float:
        """
        Share of distinct amounts present on both sides.

        ``|D & W| / max(|D|, |W|)`` over distinct amounts; 0.0 when both are empty.
        """
        deposits = set(deposit_amounts)
        withdrawals = set(withdrawal_amounts)
        denominator = max(len(deposits), len(withdrawals))
        if denominator == 0:
            return 0.0
        return len(deposits & withdrawals) / denominator

    def expected_wait_time(self, queue: Queue, side: RequestType | str) -> float:
        """
        Expected wait in minutes for a new request joining ``side``.

        ``avg_match_time / match_rate`` with
        ``match_rate = min(side, counter) / max(side, counter)``.
        Returns ``math.inf`` when the counter side is empty.
        """
        side = RequestType(side)
        if side is RequestType.DEPOSIT:
            own, counter = len(queue.deposit_queue), len(queue.withdrawal_queue)
        else:
            own, counter = len(queue.withdrawal_queue), len(queue.deposit_queue)

        if counter == 0:
            return math.inf

        match_rate = min(own, counter) / max(own, counter)
        if match_rate == 0:
            return math.inf
        return self.config.avg_match_time_minutes / match_rate

    def identify_bottlenecks(self, queue: Queue) -> list[Decimal]:
        """
        Amounts where deposits outnumber withdrawals by more than the bottleneck ratio.

        A zero withdrawal count counts as an infinite ratio. Amounts are
        returned in ascending order.
        """
        deposit_counts = Counter(r.amount for r in queue.deposit_queue)
        withdrawal_counts = Counter(r.amount for r in queue.withdrawal_queue)

        bottlenecks: list[Decimal] = []
        for amount, deposit_count in deposit_counts.items():
            withdrawal_count = withdrawal_counts.get(amount, 0)
            ratio = (
                math.inf if withdrawal_count == 0 else deposit_count / withdrawal_count
            )
            if ratio > self.config.bottleneck_ratio:
                bottlenecks.append(amount)

        return sorted(bottlenecks)

    def optimize_queue(self, queue: Queue) -> QueueOptimization:
        """
        Analyze a queue snapshot and produce recommendations.

        Args:
            queue: Read-only queue snapshot for one rail

        Returns:
            QueueOptimization report
        """
        config = self.config
        recommendations: list[str] = []

        ratio = self.demand_supply_ratio(queue)
        overlap = self.amount_overlap(
            (r.amount for r in queue.deposit_queue),
            (r.amount for r in queue.withdrawal_queue),
        )

        if ratio < config.low_supply_ratio:
            recommendations.append(LOW_SUPPLY_RECOMMENDATION)
        elif ratio > config.high_supply_ratio:
            recommendations.append(HIGH_SUPPLY_RECOMMENDATION)

        # An empty snapshot has no amounts to overlap (0/0), so nothing to advise
        has_amounts = bool(queue.deposit_queue or queue.withdrawal_queue)
        if has_amounts and overlap < config.min_amount_overlap:
            recommendations.append(POOR_OVERLAP_RECOMMENDATION)

        wait_times = {
            RequestType.DEPOSIT.value: self.expected_wait_time(queue, RequestType.DEPOSIT),
            RequestType.WITHDRAWAL.value: self.expected_wait_time(
                queue, RequestType.WITHDRAWAL
            ),
        }

        bottlenecks = self.identify_bottlenecks(queue)
        if bottlenecks:
            recommendations.append(
                f"Bottlenecks at amounts: {', '.join(str(a) for a in bottlenecks)}"
            )

        logger.info(
            f"[QUEUE] {queue.payment_method.value}: "
            f"{len(queue.deposit_queue)} deposits / {len(queue.withdrawal_queue)} withdrawals | "
            f"Ratio: {ratio:.2f} | Overlap: {overlap:.2f} | "
            f"Bottlenecks: {len(bottlenecks)}"
        )

        return QueueOptimization(
            payment_method=queue.payment_method,
            recommendations=recommendations,
            expected_wait_times=wait_times,
            demand_supply_ratio=ratio,
            amount_overlap=overlap,
            bottleneck_amounts=bottlenecks,
        )
