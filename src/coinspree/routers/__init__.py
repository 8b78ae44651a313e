"""API routers.

Includes routes for:
- /cron - Tick triggers and last-run status (Bearer CRON_SECRET)
- /email-queue - Queue status and dead-letter retry
- /notifications - ATH event history and statistics
"""
from coinspree.routers.cron import router as cron_router
from coinspree.routers.email_queue import router as email_queue_router
from coinspree.routers.notifications import router as notifications_router

__all__ = [
    "cron_router",
    "email_queue_router",
    "notifications_router",
]
