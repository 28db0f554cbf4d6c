from pushworker.services.push.builder import build_message
from pushworker.services.push.classifier import Classification, classify
from pushworker.services.push.credentials import ServiceAccountSigner, load_service_account_key
from pushworker.services.push.gateway import GatewaySender, SendResult, is_unregistered_error
from pushworker.services.push.store import StoreClient
from pushworker.services.push.worker import (
    PushDeliveryWorker,
    WorkerRunResult,
    run_push_delivery_loop,
    run_push_worker,
)

__all__ = [
    "Classification",
    "classify",
    "build_message",
    "ServiceAccountSigner",
    "load_service_account_key",
    "GatewaySender",
    "SendResult",
    "is_unregistered_error",
    "StoreClient",
    "PushDeliveryWorker",
    "WorkerRunResult",
    "run_push_worker",
    "run_push_delivery_loop",
]
