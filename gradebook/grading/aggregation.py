"""
Grade Aggregation Engine.
Rolls a student's gradable items (assignments, group assignments, graded
discussions) up into weighted course groups and a single course percentage.

Two aggregation policies exist and are intentionally kept apart:
- RedistributingAggregation: ungraded groups hand their weight to graded ones
- LegacyAggregation: weights are normalized once, ungraded groups simply drop out
"""
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .letters import letter_for

OTHER_GROUP = 'Other'


@dataclass(frozen=True)
class CourseGroup:
    name: str
    weight: float

    @classmethod
    def coerce(cls, value: Any) -> 'CourseGroup':
        if isinstance(value, CourseGroup):
            return value
        if isinstance(value, dict):
            return cls(name=value.get('name'), weight=float(value.get('weight') or 0))
        return cls(name=getattr(value, 'name'), weight=float(getattr(value, 'weight', 0) or 0))


@dataclass
class GradableItem:
    item_id: str
    group_name: Optional[str]
    total_points: float = 0.0
    due_date: Optional[datetime] = None
    published: bool = True
    grade: Optional[float] = None
    has_submission: bool = False
    is_discussion: bool = False
    title: str = ''


@dataclass
class GroupScore:
    name: str
    weight: float
    earned: float = 0.0
    possible: float = 0.0
    has_grade: bool = False
    adjusted_weight: float = 0.0

    @property
    def percent(self) -> Optional[float]:
        if not self.has_grade:
            return None
        return _safe_ratio(self.earned, self.possible) * 100


@dataclass
class AggregationOutcome:
    percent: float
    groups: List[GroupScore] = field(default_factory=list)
    other: Optional[GroupScore] = None


@dataclass
class CourseGradeResult:
    percent: float
    letter: str
    policy: str
    groups: List[GroupScore] = field(default_factory=list)
    other: Optional[GroupScore] = None


# =============================================================================
# SCORING RULE
# =============================================================================

def _numeric_grade(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def _is_past_due(due_date: Optional[datetime], now: datetime) -> bool:
    if due_date is None:
        return False
    if (due_date.tzinfo is None) != (now.tzinfo is None):
        due_date = due_date.replace(tzinfo=timezone.utc) if due_date.tzinfo is None else due_date.replace(tzinfo=None)
    return now > due_date


def _safe_ratio(numerator: float, denominator: float) -> float:
    if not denominator or not math.isfinite(denominator):
        return 0.0
    result = numerator / denominator
    return result if math.isfinite(result) else 0.0


def tally(items: Iterable[GradableItem], grades: Dict[str, Any], now: datetime) -> Tuple[float, float, bool]:
    """
    Sum earned and possible points over the countable items.

    Countable: published, and either graded or past due with nothing submitted
    (scored 0). Submitted but ungraded items are left out entirely.
    """
    earned = 0.0
    possible = 0.0
    counted = False

    for item in items:
        if not item.published:
            continue
        grade = _numeric_grade(grades.get(item.item_id))
        if grade is not None:
            earned += grade
            possible += item.total_points or 0
            counted = True
        elif _is_past_due(item.due_date, now) and not item.has_submission:
            possible += item.total_points or 0
            counted = True

    return earned, possible, counted


def _partition(groups: Sequence[CourseGroup], items: Sequence[GradableItem]):
    names = {group.name for group in groups}
    members = {group.name: [item for item in items if item.group_name == group.name] for group in groups}
    other = [item for item in items if item.group_name not in names]
    return members, other


# =============================================================================
# STRATEGIES
# =============================================================================

class AggregationStrategy(ABC):
    name = ''

    @abstractmethod
    def score(
        self,
        groups: Sequence[CourseGroup],
        items: Sequence[GradableItem],
        grades: Dict[str, Any],
        now: datetime
    ) -> AggregationOutcome:
        pass

    def percent(self, groups, items, grades=None, now=None) -> float:
        if grades is None:
            grades = {item.item_id: item.grade for item in items}
        return self.score(
            [CourseGroup.coerce(g) for g in groups], list(items), grades, now or datetime.now(timezone.utc)
        ).percent


class RedistributingAggregation(AggregationStrategy):
    """Groups without grades give their weight to graded groups, proportionally."""
    name = 'redistribute'

    def score(self, groups, items, grades, now) -> AggregationOutcome:
        members, other_items = _partition(groups, items)

        scores = []
        graded = []
        weight_to_redistribute = 0.0
        for group in groups:
            earned, possible, counted = tally(members[group.name], grades, now)
            group_score = GroupScore(group.name, group.weight, earned, possible)
            scores.append(group_score)
            if counted and possible > 0 and math.isfinite(earned / possible):
                group_score.has_grade = True
                graded.append(group_score)
            else:
                weight_to_redistribute += group.weight

        other = None
        if other_items:
            earned, possible, counted = tally(other_items, grades, now)
            other = GroupScore(OTHER_GROUP, 0.0, earned, possible, has_grade=counted and possible > 0)

        if not graded and not (other and other.has_grade):
            return AggregationOutcome(0.0, scores, other)

        weighted_sum = 0.0
        total_adjusted_weight = 0.0

        graded_weight = sum(group.weight for group in graded)
        for group in graded:
            if graded_weight > 0:
                group.adjusted_weight = group.weight + weight_to_redistribute * (group.weight / graded_weight)
            else:
                group.adjusted_weight = 100 / len(graded)
            weighted_sum += group.percent * group.adjusted_weight
            total_adjusted_weight += group.adjusted_weight

        if other and other.has_grade:
            remaining = 100 - total_adjusted_weight
            if remaining > 0:
                other.adjusted_weight = remaining
                weighted_sum += other.percent * remaining
                total_adjusted_weight += remaining

        return AggregationOutcome(_safe_ratio(weighted_sum, total_adjusted_weight), scores, other)


class LegacyAggregation(AggregationStrategy):
    """
    Backward compatible policy: normalize course weights to 100 and skip groups
    without countable items. "Other" takes whatever weight is left over.
    """
    name = 'legacy'

    def score(self, groups, items, grades, now) -> AggregationOutcome:
        members, other_items = _partition(groups, items)

        total = sum(group.weight for group in groups)
        if total != 100 and total > 0:
            groups = [CourseGroup(group.name, group.weight / total * 100) for group in groups]

        scores = []
        weighted_sum = 0.0
        total_weight = 0.0
        for group in groups:
            group_score = GroupScore(group.name, group.weight)
            scores.append(group_score)
            if not members[group.name]:
                continue
            earned, possible, _ = tally(members[group.name], grades, now)
            group_score.earned, group_score.possible = earned, possible
            if possible > 0:
                group_score.has_grade = True
                group_score.adjusted_weight = group.weight
                weighted_sum += group_score.percent * group.weight
                total_weight += group.weight

        other = None
        if other_items:
            earned, possible, _ = tally(other_items, grades, now)
            other = GroupScore(OTHER_GROUP, 0.0, earned, possible)
            if possible > 0:
                remaining = 100 - total_weight
                other.has_grade = True
                other.adjusted_weight = remaining
                weighted_sum += other.percent * remaining
                total_weight += remaining

        return AggregationOutcome(_safe_ratio(weighted_sum, total_weight), scores, other)


# =============================================================================
# ENTRY POINT
# =============================================================================

def _grades_for(student_id, items: Sequence[GradableItem], grade_table: Optional[Dict]) -> Dict[str, Any]:
    if grade_table is None:
        return {item.item_id: item.grade for item in items}
    row = grade_table.get(student_id)
    if row is None:
        row = grade_table.get(str(student_id), {})
    return {str(key): value for key, value in row.items()}


def _course_field(course, name):
    if isinstance(course, dict):
        return course.get(name)
    return getattr(course, name, None)


def aggregate_course_grade(
    student_id,
    course,
    items: Sequence[GradableItem],
    grade_table: Optional[Dict] = None,
    strategy: AggregationStrategy = None,
    now: datetime = None
) -> CourseGradeResult:
    """
    Compute a student's weighted course percentage and letter grade.

    `course` needs `groups` ({name, weight} rows) and `grade_scale`.
    `grade_table` maps student id -> item id -> grade; when omitted the
    grades carried on the items are used.
    """
    strategy = strategy or RedistributingAggregation()
    groups = [CourseGroup.coerce(g) for g in (_course_field(course, 'groups') or [])]
    items = list(items or [])
    grades = _grades_for(student_id, items, grade_table)

    outcome = strategy.score(groups, items, grades, now or datetime.now(timezone.utc))
    return CourseGradeResult(
        percent=outcome.percent,
        letter=letter_for(outcome.percent, _course_field(course, 'grade_scale')),
        policy=strategy.name,
        groups=outcome.groups,
        other=outcome.other,
    )


def group_breakdown(result: CourseGradeResult) -> List[Dict[str, Any]]:
    """Per-group display rows (earned, possible, percent, weights) for a computed course grade."""
    rows = []
    scores = list(result.groups)
    if result.other is not None:
        scores.append(result.other)
    for score in scores:
        percent = score.percent
        rows.append({
            'name': score.name,
            'weight': round(score.weight, 2),
            'adjusted_weight': round(score.adjusted_weight, 2),
            'earned': round(score.earned, 2),
            'possible': round(score.possible, 2),
            'percent': round(percent, 2) if percent is not None else None,
            'has_grade': score.has_grade,
        })
    return rows
