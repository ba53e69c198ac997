"""
Device capability probe.

Decides whether the reasoning tier should request an accelerated model or the
conservative CPU one. Probing is memoised and single-flight; any probe failure
yields the budget tier.
"""

import asyncio
import shutil
from typing import Optional

import psutil

from tabgraph_router.config import Settings, get_logger
from tabgraph_router.agents.models import DeviceCapabilities, DeviceTier

logger = get_logger(__name__)

POWER_MIN_MEMORY_MB = 16000
ENTERPRISE_MIN_MEMORY_MB = 32000
ENTERPRISE_MIN_ACCEL_GB = 12

BUDGET_CAPABILITIES = DeviceCapabilities(tier=DeviceTier.BUDGET)


def determine_tier(has_acceleration: bool, memory_mb: float, accel_gb: float) -> DeviceTier:
    """
    Map raw capabilities onto a device tier.

    Args:
        has_acceleration: Whether an accelerator is available
        memory_mb: System memory in MB
        accel_gb: Estimated accelerator memory in GB

    Returns:
        The device tier
    """
    if not has_acceleration or memory_mb < POWER_MIN_MEMORY_MB:
        return DeviceTier.BUDGET
    if memory_mb >= ENTERPRISE_MIN_MEMORY_MB and accel_gb >= ENTERPRISE_MIN_ACCEL_GB:
        return DeviceTier.ENTERPRISE
    # accelerated machines below the enterprise bar (including < 6GB cards) run as power
    return DeviceTier.POWER


def system_memory_mb() -> float:
    """Physical memory in MB."""
    return psutil.virtual_memory().total / (1024 * 1024)


async def accelerator_memory_gb() -> float:
    """Total memory of the first NVIDIA GPU in GB, or 0 when none is found."""
    if shutil.which("nvidia-smi") is None:
        return 0.0

    proc = await asyncio.create_subprocess_exec(
        "nvidia-smi",
        "--query-gpu=memory.total",
        "--format=csv,noheader,nounits",
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.DEVNULL,
    )
    stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=5.0)
    if proc.returncode != 0:
        return 0.0

    lines = stdout.decode().strip().splitlines()
    return float(lines[0]) / 1024 if lines else 0.0


class DeviceCapabilityProbe:
    """Memoised hardware probe."""

    def __init__(self):
        self._capabilities: Optional[DeviceCapabilities] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def capabilities(self) -> Optional[DeviceCapabilities]:
        return self._capabilities

    async def _probe(self) -> DeviceCapabilities:
        memory_mb = await asyncio.to_thread(system_memory_mb)
        accel_gb = await accelerator_memory_gb()
        has_acceleration = accel_gb > 0
        return DeviceCapabilities(
            has_acceleration=has_acceleration,
            system_memory_mb=memory_mb,
            estimated_accelerator_memory_gb=accel_gb,
            tier=determine_tier(has_acceleration, memory_mb, accel_gb),
        )

    async def _run(self) -> DeviceCapabilities:
        try:
            capabilities = await self._probe()
        except Exception as e:
            logger.warning(f"Device probe failed, assuming budget tier: {e}")
            capabilities = BUDGET_CAPABILITIES
        logger.info(
            f"Device tier: {capabilities.tier.value} "
            f"(memory={capabilities.system_memory_mb:.0f}MB, "
            f"accelerator={capabilities.estimated_accelerator_memory_gb:.1f}GB)"
        )
        self._capabilities = capabilities
        return capabilities

    async def detect(self) -> DeviceCapabilities:
        """Probe once; concurrent callers share the in-flight probe."""
        if self._capabilities is not None:
            return self._capabilities
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return await asyncio.shield(self._task)


def choose_reasoning_model(settings: Settings, capabilities: DeviceCapabilities) -> str:
    """Accelerated reasoning model on capable devices, the CPU model otherwise."""
    if capabilities.has_acceleration and capabilities.tier is not DeviceTier.BUDGET:
        return settings.reasoning_model
    return settings.reasoning_model_cpu
