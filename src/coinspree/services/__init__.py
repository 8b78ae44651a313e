"""Service layer: ATH detection, notification gating, fan-out and email delivery."""
from coinspree.services.ath_detector import ATHDetector
from coinspree.services.email_queue import EmailQueue
from coinspree.services.email_sender import EmailSender
from coinspree.services.fanout import NotificationFanout
from coinspree.services.frequency import FrequencyGate
from coinspree.services.market_data import MarketDataClient
from coinspree.services.pipeline import ATHPipeline
from coinspree.services.recipients import RecipientResolver
from coinspree.services.scheduler import run_periodically

__all__ = [
    "ATHDetector",
    "ATHPipeline",
    "EmailQueue",
    "EmailSender",
    "FrequencyGate",
    "MarketDataClient",
    "NotificationFanout",
    "RecipientResolver",
    "run_periodically",
]
