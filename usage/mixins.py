class TrackedUsageMixin:
    """
    Marks a view as a product endpoint whose authenticated calls show up in
    the caller's own usage reports. The audit middleware reads the flag.
    """
    track_usage = True
