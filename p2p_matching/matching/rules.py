"""Matching rules: condition types, the immutable rule set, and evaluation."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from p2p_matching.matching.models import PaymentMethod, PaymentRequest

logger = logging.getLogger(__name__)

ConditionOperator = Literal["equals", "greater_than", "less_than", "between", "in_list"]


class _ConditionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    weight: float = Field(..., ge=0.0, description="Added to the rule score when true")


class AmountExactCondition(_ConditionBase):
    type: Literal["amount_exact"] = "amount_exact"
    operator: ConditionOperator = "equals"


class AmountRangeCondition(_ConditionBase):
    type: Literal["amount_range"] = "amount_range"
    operator: ConditionOperator = "between"
    min_amount: Decimal
    max_amount: Decimal


class TimeSinceRequestCondition(_ConditionBase):
    type: Literal["time_since_request"] = "time_since_request"
    operator: ConditionOperator = "less_than"
    max_age_ms: int = Field(..., ge=0)


class UserRatingCondition(_ConditionBase):
    type: Literal["user_rating"] = "user_rating"
    operator: ConditionOperator = "greater_than"
    threshold: float


class GeographicDistanceCondition(_ConditionBase):
    type: Literal["geographic_distance"] = "geographic_distance"
    operator: ConditionOperator = "less_than"
    max_km: float = Field(..., ge=0.0)


class PaymentMethodPreferenceCondition(_ConditionBase):
    type: Literal["payment_method_preference"] = "payment_method_preference"
    operator: ConditionOperator = "in_list"
    methods: tuple[PaymentMethod, ...]


class UnknownCondition(BaseModel):
    """A condition definition that could not be parsed. Always evaluates false."""

    model_config = ConfigDict(frozen=True)

    type: str = "unknown"
    operator: str | None = None
    weight: float = 0.0
    raw: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


KnownCondition = Annotated[
    Union[
        AmountExactCondition,
        AmountRangeCondition,
        TimeSinceRequestCondition,
        UserRatingCondition,
        GeographicDistanceCondition,
        PaymentMethodPreferenceCondition,
    ],
    Field(discriminator="type"),
]

Condition = Union[
    AmountExactCondition,
    AmountRangeCondition,
    TimeSinceRequestCondition,
    UserRatingCondition,
    GeographicDistanceCondition,
    PaymentMethodPreferenceCondition,
    UnknownCondition,
]

_condition_adapter: TypeAdapter[Any] = TypeAdapter(KnownCondition)


def parse_condition(raw: Any) -> Condition:
    """Parse one condition definition, failing closed to ``UnknownCondition``."""
    if isinstance(raw, (_ConditionBase, UnknownCondition)):
        return raw
    try:
        return _condition_adapter.validate_python(raw)
    except ValidationError as e:
        data = dict(raw) if isinstance(raw, dict) else {"value": repr(raw)}
        logger.warning(
            f"[RULES] Unparseable condition {data.get('type', '?')!r} - "
            f"it will never match: {e.error_count()} validation error(s)"
        )
        weight = data.get("weight")
        return UnknownCondition(
            type=str(data.get("type", "unknown")),
            operator=str(data["operator"]) if "operator" in data else None,
            weight=weight if isinstance(weight, (int, float)) else 0.0,
            raw=data,
            error=str(e),
        )


class ScoringFactors(BaseModel):
    """Per-factor weights carried with each rule. Informational only."""

    model_config = ConfigDict(frozen=True)

    time_match: float = 0.0
    amount_match: float = 0.0
    user_trust: float = 0.0
    geographic_match: float = 0.0
    method_preference: float = 0.0


class ScoringDecay(BaseModel):
    """Decay rates carried with each rule.

    Not applied by the scorer, which uses a single linear time decay.
    """

    model_config = ConfigDict(frozen=True)

    time_decay: float = 0.0
    priority_decay: float = 0.0


class MatchingScoring(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_score: float = Field(..., ge=0.0)
    factors: ScoringFactors = Field(default_factory=ScoringFactors)
    decay: ScoringDecay = Field(default_factory=ScoringDecay)


class MatchingRule(BaseModel):
    """A named, weighted set of conditions."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    priority: int = Field(default=100, description="Lower runs first")
    conditions: tuple[Condition, ...] = ()
    scoring: MatchingScoring
    enabled: bool = True

    @field_validator("conditions", mode="before")
    @classmethod
    def _parse_conditions(cls, value: Any) -> tuple[Condition, ...]:
        if value is None:
            return ()
        return tuple(parse_condition(item) for item in value)


class RuleSet(BaseModel):
    """Immutable, priority-ordered collection of matching rules.

    Every modifier returns a new RuleSet; instances are safe to share
    between concurrent searches.
    """

    model_config = ConfigDict(frozen=True)

    rules: tuple[MatchingRule, ...] = ()

    @field_validator("rules", mode="after")
    @classmethod
    def _sort_by_priority(cls, value: tuple[MatchingRule, ...]) -> tuple[MatchingRule, ...]:
        ids = [rule.id for rule in value]
        if len(ids) != len(set(ids)):
            raise ValueError("rule ids must be unique")
        return tuple(sorted(value, key=lambda r: r.priority))

    @property
    def enabled_rules(self) -> tuple[MatchingRule, ...]:
        return tuple(rule for rule in self.rules if rule.enabled)

    @property
    def total_rules(self) -> int:
        return len(self.rules)

    @property
    def active_rules(self) -> int:
        return len(self.enabled_rules)

    def get(self, rule_id: str) -> MatchingRule | None:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def with_rule(self, rule: MatchingRule) -> RuleSet:
        """Add a rule (or replace the rule with the same id)."""
        remaining = tuple(r for r in self.rules if r.id != rule.id)
        return RuleSet(rules=remaining + (rule,))

    def with_updates(self, rule_id: str, **changes: Any) -> RuleSet:
        """Return a copy where ``rule_id`` has ``changes`` applied.

        Raises KeyError if no rule has that id.
        """
        current = self.get(rule_id)
        if current is None:
            raise KeyError(rule_id)
        data = current.model_dump()
        data["conditions"] = current.conditions
        data.update(changes)
        data["id"] = rule_id
        return self.with_rule(MatchingRule.model_validate(data))

    def without_rule(self, rule_id: str) -> RuleSet:
        return RuleSet(rules=tuple(r for r in self.rules if r.id != rule_id))


def default_rule_set() -> RuleSet:
    """The stock rules: exact amount, recent requests, trusted users."""
    return RuleSet(
        rules=(
            MatchingRule(
                id="exact_amount_match",
                name="Exact Amount Match",
                description="Prioritize exact amount matches",
                priority=1,
                conditions=(AmountExactCondition(weight=100),),
                scoring=MatchingScoring(
                    base_score=100,
                    factors=ScoringFactors(
                        time_match=20,
                        amount_match=50,
                        user_trust=15,
                        geographic_match=10,
                        method_preference=5,
                    ),
                    decay=ScoringDecay(time_decay=5, priority_decay=2),
                ),
            ),
            MatchingRule(
                id="recent_requests",
                name="Recent Requests Priority",
                description="Prioritize recently created requests",
                priority=2,
                conditions=(TimeSinceRequestCondition(max_age_ms=3_600_000, weight=30),),
                scoring=MatchingScoring(
                    base_score=80,
                    factors=ScoringFactors(
                        time_match=40,
                        amount_match=20,
                        user_trust=10,
                        geographic_match=5,
                        method_preference=5,
                    ),
                    decay=ScoringDecay(time_decay=10, priority_decay=5),
                ),
            ),
            MatchingRule(
                id="trusted_users",
                name="Trusted User Priority",
                description="Prioritize users with good history",
                priority=3,
                conditions=(UserRatingCondition(threshold=4.5, weight=25),),
                scoring=MatchingScoring(
                    base_score=70,
                    factors=ScoringFactors(
                        time_match=15,
                        amount_match=25,
                        user_trust=20,
                        geographic_match=5,
                        method_preference=5,
                    ),
                    decay=ScoringDecay(time_decay=8, priority_decay=3),
                ),
            ),
        )
    )


def _compare(operator: str, value: float, threshold: float) -> bool | None:
    """Apply a scalar operator; None means the operator is not scalar."""
    if operator == "greater_than":
        return value > threshold
    if operator == "less_than":
        return value < threshold
    if operator == "equals":
        return value == threshold
    return None


class MatchingRules:
    """Evaluates rule conditions against a deposit/withdrawal pair.

    Every check fails closed: unknown condition types, unsupported
    operators and missing data evaluate to False instead of raising.
    """

    def evaluate_condition(
        self,
        condition: Condition,
        deposit: PaymentRequest,
        withdrawal: PaymentRequest,
        now: datetime,
    ) -> bool:
        try:
            return self._dispatch(condition, deposit, withdrawal, now)
        except (ArithmeticError, TypeError, ValueError) as e:
            logger.warning(
                f"[RULES] Condition {condition.type!r} failed to evaluate: {e}"
            )
            return False

    def _dispatch(
        self,
        condition: Condition,
        deposit: PaymentRequest,
        withdrawal: PaymentRequest,
        now: datetime,
    ) -> bool:
        if isinstance(condition, AmountExactCondition):
            return self.amount_exact(condition, deposit, withdrawal)
        if isinstance(condition, AmountRangeCondition):
            return self.amount_range(condition, deposit, withdrawal)
        if isinstance(condition, TimeSinceRequestCondition):
            return self.time_since_request(condition, deposit, withdrawal, now)
        if isinstance(condition, UserRatingCondition):
            return self.user_rating(condition, deposit, withdrawal)
        if isinstance(condition, GeographicDistanceCondition):
            return self.geographic_distance(condition, deposit, withdrawal)
        if isinstance(condition, PaymentMethodPreferenceCondition):
            return self.payment_method_preference(condition, deposit, withdrawal)
        logger.debug(f"[RULES] Unknown condition type {condition.type!r} - false")
        return False

    def amount_exact(
        self,
        condition: AmountExactCondition,
        deposit: PaymentRequest,
        withdrawal: PaymentRequest,
    ) -> bool:
        if condition.operator != "equals":
            return False
        return deposit.amount == withdrawal.amount

    def amount_range(
        self,
        condition: AmountRangeCondition,
        deposit: PaymentRequest,
        withdrawal: PaymentRequest,
    ) -> bool:
        if condition.operator != "between" or condition.min_amount > condition.max_amount:
            return False
        return all(
            condition.min_amount <= req.amount <= condition.max_amount
            for req in (deposit, withdrawal)
        )

    def time_since_request(
        self,
        condition: TimeSinceRequestCondition,
        deposit: PaymentRequest,
        withdrawal: PaymentRequest,
        now: datetime,
    ) -> bool:
        if condition.operator not in ("less_than", "greater_than"):
            return False
        return all(
            _compare(condition.operator, req.age_ms(now), condition.max_age_ms)
            for req in (deposit, withdrawal)
        )

    def user_rating(
        self,
        condition: UserRatingCondition,
        deposit: PaymentRequest,
        withdrawal: PaymentRequest,
    ) -> bool:
        if deposit.customer_rating is None or withdrawal.customer_rating is None:
            return False
        results = [
            _compare(condition.operator, req.customer_rating, condition.threshold)  # type: ignore[arg-type]
            for req in (deposit, withdrawal)
        ]
        return all(r is True for r in results)

    def geographic_distance(
        self,
        condition: GeographicDistanceCondition,
        deposit: PaymentRequest,
        withdrawal: PaymentRequest,
    ) -> bool:
        if condition.operator not in ("less_than", "greater_than"):
            return False
        if deposit.location is None or withdrawal.location is None:
            return False
        distance = deposit.location.distance_km(withdrawal.location)
        return bool(_compare(condition.operator, distance, condition.max_km))

    def payment_method_preference(
        self,
        condition: PaymentMethodPreferenceCondition,
        deposit: PaymentRequest,
        withdrawal: PaymentRequest,
    ) -> bool:
        if condition.operator == "in_list":
            return deposit.payment_method in condition.methods
        if condition.operator == "equals" and len(condition.methods) == 1:
            return deposit.payment_method == condition.methods[0]
        return False

    def evaluate_rule(
        self,
        rule: MatchingRule,
        deposit: PaymentRequest,
        withdrawal: PaymentRequest,
        now: datetime,
    ) -> float:
        """Return ``base_score + summed weights`` if any condition holds, else 0."""
        summed = sum(
            condition.weight
            for condition in rule.conditions
            if self.evaluate_condition(condition, deposit, withdrawal, now)
        )
        return rule.scoring.base_score + summed if summed > 0 else 0.0
