from celery import Celery

from .config import get_settings
from .logging_config import configure_logging, get_logger

settings = get_settings()

configure_logging()
logger = get_logger(__name__)

celery = Celery(__name__, broker=settings.celery_broker_url, backend=settings.celery_result_backend)
celery.conf.task_always_eager = settings.celery_always_eager


@celery.task(name="send_order_email")
def send_order_email(email: str, order_number: str, total: float):
    # No mail provider is wired up; the confirmation is logged
    logger.info("sending order confirmation", email=email, order_number=order_number)
    logger.info("order confirmation sent", email=email, order_number=order_number, total=total)
    return True
