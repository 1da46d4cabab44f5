"""Network status observer."""
from __future__ import annotations

import logging
from collections.abc import Callable
from threading import Lock

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivityObserver:
	"""Holds the believed connectivity state and notifies on transitions.

	The platform network-status collaborator calls ``set_online``; repeated
	reports of the same state are not forwarded to listeners.
	"""

	def __init__(self, initially_online: bool = True) -> None:
		self._online = initially_online
		self._lock = Lock()
		self._listeners: list[ConnectivityListener] = []

	@property
	def is_online(self) -> bool:
		return self._online

	def add_listener(self, listener: ConnectivityListener) -> None:
		self._listeners.append(listener)

	def remove_listener(self, listener: ConnectivityListener) -> None:
		if listener in self._listeners:
			self._listeners.remove(listener)

	def set_online(self, online: bool) -> None:
		with self._lock:
			if online == self._online:
				return
			self._online = online
		logger.info(f"Connectivity {'restored' if online else 'lost'}")
		for listener in list(self._listeners):
			try:
				listener(online)
			except Exception as e:
				logger.error(f"Connectivity listener error: {e}")
