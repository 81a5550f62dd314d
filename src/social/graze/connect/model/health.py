import asyncio


class HealthGauge:
    """
    Error-pressure counter behind the readiness probe.

    Unexpected errors (not provider rejections or bad callbacks, which are ordinary flow) add
    to the pressure, and a background task bleeds it off one point per tick. A burst of errors
    pushes the pressure past the threshold and readiness fails until it drains again.
    """

    def __init__(self, pressure: int = 0, threshold: int = 100) -> None:
        self._pressure = pressure
        self._threshold = threshold
        self._lock = asyncio.Lock()

    async def record_error(self, weight: int = 1) -> int:
        async with self._lock:
            self._pressure += int(weight)
            return self._pressure

    async def decay(self) -> None:
        async with self._lock:
            if self._pressure > 0:
                self._pressure -= 1

    async def pressure(self) -> int:
        async with self._lock:
            return self._pressure

    async def is_healthy(self) -> bool:
        async with self._lock:
            return self._pressure <= self._threshold
