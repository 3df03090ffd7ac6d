"""
Data access exceptions.

Every botocore failure is translated into one of these, so services choose
between failing open (cache, rate limiter) and failing closed (budget)
without inspecting botocore error codes.
"""


class DynamoDBError(Exception):
    """Store unreachable, misconfigured or rejected the request."""
    pass


class ConditionalCheckFailedError(DynamoDBError):
    """A condition expression evaluated to false; the write was not applied."""
    pass


class RetryableError(DynamoDBError):
    """Throttled or transient server-side failure."""
    pass
