"""Background workers (Celery) for session maintenance.

The keep-alive tick normally runs on a thread inside the API process; with
KEEPALIVE_MODE=celery it is driven by Celery beat instead.
"""
