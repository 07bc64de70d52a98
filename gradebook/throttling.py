from rest_framework.throttling import UserRateThrottle


class GradingRateThrottle(UserRateThrottle):
    """Rate limit for teacher grading and student answer writes."""
    scope = 'grading'
    rate = '30/minute'
