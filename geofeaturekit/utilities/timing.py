import time
from contextlib import contextmanager


class TimingData:
	"""Accumulating wall-clock timers, keyed by step name."""

	def __init__(self):
		self._started = {}
		self.results = {}

	def start(self, key):
		# resuming a stopped key keeps accumulating
		self._started[key] = time.perf_counter() - self.results.get(key, 0.0)

	def stop(self, key):
		if key not in self._started:
			return -1
		result = time.perf_counter() - self._started.pop(key)
		self.results[key] = result
		return result

	@contextmanager
	def time(self, key):
		self.start(key)
		try:
			yield self
		finally:
			self.stop(key)

	def get(self, key):
		return self.results.get(key)

	def is_running(self, key):
		return key in self._started

	def print(self):
		return "\n".join(f"{key}: {value:.2f} seconds" for key, value in self.results.items())
