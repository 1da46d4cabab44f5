"""Event delivery: HTTP dispatch, offline queue and connectivity."""

from vigil.delivery.connectivity import ConnectivityObserver
from vigil.delivery.dispatcher import DeliveryResult, DeliveryStatus, EventDispatcher, FlushResult
from vigil.delivery.queue import OfflineQueue, OfflineQueueEntry

__all__ = [
	"ConnectivityObserver",
	"EventDispatcher",
	"DeliveryResult",
	"DeliveryStatus",
	"FlushResult",
	"OfflineQueue",
	"OfflineQueueEntry",
]
