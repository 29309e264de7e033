"""Dispatch notifications and settlement requests as Celery tasks by name.

The matching worker never imports the notification or settlement code; it
only knows their task names and payload shapes.
"""

import logging
from typing import Any, Dict, List

from kombu.exceptions import OperationalError

from matching.errors import DispatchFailure
from matching.ports import NotificationPort, NotificationRequest, SettlementPort

logger = logging.getLogger(__name__)

NOTIFY_TASK = "notifications.deliver"
SETTLE_TASK = "settlement.execute_chain"


class CeleryNotificationDispatcher(NotificationPort):
    """Fire-and-forget notification dispatch via ``notifications.deliver``."""

    def __init__(self, celery_app, task_name: str = NOTIFY_TASK):
        self.celery_app = celery_app
        self.task_name = task_name

    def notify(self, request: NotificationRequest) -> None:
        try:
            self.celery_app.send_task(self.task_name, kwargs={"notification": request.to_payload()})
        except (OperationalError, ConnectionError, TimeoutError) as e:
            raise DispatchFailure(f"Notification dispatch to {request.user_id} failed: {e}") from e


class CelerySettlementGateway(SettlementPort):
    """Ask the settlement workflow to execute a confirmed chain.

    The outcome comes back later as a ChainSettlementReported event.
    """

    def __init__(self, celery_app, task_name: str = SETTLE_TASK):
        self.celery_app = celery_app
        self.task_name = task_name

    def request_settlement(self, chain_id: str, participants: List[Dict[str, Any]]) -> None:
        try:
            self.celery_app.send_task(
                self.task_name,
                kwargs={"chain_id": chain_id, "participants": participants},
            )
        except (OperationalError, ConnectionError, TimeoutError) as e:
            raise DispatchFailure(f"Settlement request for chain {chain_id} failed: {e}") from e
        logger.info(f"Settlement requested for chain {chain_id}", extra={"chain_id": chain_id})
