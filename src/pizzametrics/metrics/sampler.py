"""Host CPU and memory sampling.

Readings are point samples taken at flush time; nothing is kept between
calls.
"""

import logging
from dataclasses import dataclass

import psutil

from pizzametrics.exceptions import SamplingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SystemSample:
    """CPU and memory utilization in percent."""

    cpu_percent: float = 0.0
    memory_percent: float = 0.0


class SystemSampler:
    """Reads host load and memory utilization through psutil.

    Example:
        >>> sampler = SystemSampler(precision=2)
        >>> sample = sampler.sample()
        >>> sample.cpu_percent, sample.memory_percent
        (37.0, 61.42)
    """

    def __init__(self, precision: int = 2) -> None:
        """Initialize sampler.

        Args:
            precision: Decimal places kept in each reading.
        """
        self.precision = precision

    def sample_cpu(self) -> float:
        """Return the 1-minute load average per logical core, as a percentage.

        The value is not clamped: a host loaded beyond its core count
        reports more than 100.

        Raises:
            SamplingError: If the load average or core count is unavailable.
        """
        try:
            load_1m = psutil.getloadavg()[0]
            cores = psutil.cpu_count(logical=True)
        except (OSError, psutil.Error) as e:
            raise SamplingError("cpu", str(e), cause=e)

        if not cores:
            raise SamplingError("cpu", "logical core count unavailable")

        ratio = round(load_1m / cores, self.precision)
        return round(ratio * 100, self.precision)

    def sample_memory(self) -> float:
        """Return used memory as a percentage of total memory.

        Raises:
            SamplingError: If memory statistics are unavailable.
        """
        try:
            memory = psutil.virtual_memory()
        except (OSError, psutil.Error) as e:
            raise SamplingError("memory", str(e), cause=e)

        if memory.total <= 0:
            raise SamplingError("memory", f"invalid total memory {memory.total}")

        used = memory.total - memory.available
        return round(used / memory.total * 100, self.precision)

    def sample(self) -> SystemSample:
        """Take both readings, substituting 0.0 for any that fail."""
        try:
            cpu = self.sample_cpu()
        except SamplingError as e:
            logger.warning(f"{e}; reporting 0")
            cpu = 0.0

        try:
            memory = self.sample_memory()
        except SamplingError as e:
            logger.warning(f"{e}; reporting 0")
            memory = 0.0

        return SystemSample(cpu_percent=cpu, memory_percent=memory)
