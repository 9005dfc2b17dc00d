"""
Composition root: builds the long-lived collaborators once per process.

The FastAPI lifespan builds a ``Container`` and stores it on ``app.state``;
request dependencies read from it and construct per-request services.
"""
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.logging import get_logger
from app.core.tasks import TaskExecutor
from app.integrations import CLUEClient, IntegrationClient, PolicyStarClient, RMVClient, SpeedPayClient
from app.services.document_storage import DocumentStorage, LocalDocumentStorage
from app.services.validation import Validator

logger = get_logger(__name__)


@dataclass
class Container:
    settings: Settings
    validator: Validator
    executor: TaskExecutor
    session_factory: Callable[[], Session]
    storage: DocumentStorage
    policystar: PolicyStarClient
    rmv: RMVClient
    speedpay: SpeedPayClient
    clue: CLUEClient

    @property
    def integrations(self) -> List[IntegrationClient]:
        return [self.policystar, self.rmv, self.speedpay, self.clue]

    def close(self) -> None:
        self.executor.shutdown(wait=True)
        for client in self.integrations:
            client.close()
        logger.info("Container closed")


def build_container(
    settings: Settings,
    session_factory: Callable[[], Session],
    http_clients: Optional[Dict[str, httpx.Client]] = None,
    storage: Optional[DocumentStorage] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Container:
    """Wire the application's collaborators from settings.

    ``http_clients`` maps integration prefixes (``"SPEEDPAY"``...) to
    pre-built ``httpx.Client`` objects; unspecified ones are created from
    settings.
    """
    http_clients = http_clients or {}

    def client(cls, prefix: str):
        return cls(settings.integration(prefix), http_client=http_clients.get(prefix), sleep=sleep)

    container = Container(
        settings=settings,
        validator=Validator(max_upload_size_bytes=settings.max_upload_size_bytes),
        executor=TaskExecutor(max_workers=settings.TASK_EXECUTOR_MAX_WORKERS),
        session_factory=session_factory,
        storage=storage or LocalDocumentStorage(settings.UPLOAD_DIR),
        policystar=client(PolicyStarClient, "POLICYSTAR"),
        rmv=client(RMVClient, "RMV"),
        speedpay=client(SpeedPayClient, "SPEEDPAY"),
        clue=client(CLUEClient, "CLUE"),
    )
    enabled = [c.name for c in container.integrations if c.enabled]
    logger.info(f"Container built; enabled integrations: {', '.join(enabled) or 'none'}")
    return container
