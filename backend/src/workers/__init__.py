"""Background workers for the matching engine.

The Celery app lives in ``workers.celery_app``; tasks in
``workers.matching_tasks`` are registered through its ``include`` list.
"""
