from django.conf import settings
from .aggregation import AggregationStrategy, LegacyAggregation, RedistributingAggregation
from .merge import OVERRIDE_TOLERANCE, GradeMergeEngine


def get_aggregation_strategy(policy: str = None) -> AggregationStrategy:
    if policy is None:
        policy = settings.GRADING_SERVICE.get('DEFAULT_AGGREGATION_POLICY', 'redistribute')
    return LegacyAggregation() if policy == 'legacy' else RedistributingAggregation()


def get_merge_engine(auto_grader=None) -> GradeMergeEngine:
    tolerance = settings.GRADING_SERVICE.get('OVERRIDE_TOLERANCE', OVERRIDE_TOLERANCE)
    return GradeMergeEngine(auto_grader=auto_grader, tolerance=tolerance)
