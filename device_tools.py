from __future__ import annotations

import logging
import platform
from dataclasses import dataclass
from threading import Lock

from toolserver.registry import Parameter, ParameterType, ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class DeviceState:
    board_name: str
    firmware_version: str
    volume: int = 70

    def __post_init__(self) -> None:
        self._lock = Lock()

    def set_volume(self, volume: int) -> None:
        with self._lock:
            self.volume = max(0, min(100, volume))

    def status(self) -> dict:
        with self._lock:
            return {"audio_speaker": {"volume": self.volume}}


def register_device_tools(registry: ToolRegistry, device: DeviceState) -> None:
    # Common tools go first so the list prefix stays stable for prompt caching upstream.
    registry.add_tool(
        "self.get_device_status",
        "Provides the real-time information of the device, including the current status of the audio speaker.\n"
        "Use this tool for: \n"
        "1. Answering questions about current condition (e.g. what is the current volume of the audio speaker?)\n"
        "2. As the first step to control the device (e.g. turn up / down the volume of the audio speaker, etc.)",
        [],
        lambda args: device.status(),
    )

    def set_volume(args) -> bool:
        device.set_volume(args["volume"])
        logger.info("Speaker volume set to %s", device.volume)
        return True

    registry.add_tool(
        "self.audio_speaker.set_volume",
        "Set the volume of the audio speaker. If the current volume is unknown, "
        "you must call `self.get_device_status` tool first and then call this tool.",
        [Parameter("volume", ParameterType.INTEGER, minimum=0, maximum=100)],
        set_volume,
    )
    registry.add_tool(
        "self.get_system_info",
        "Get the system information",
        [],
        lambda args: {
            "board": device.board_name,
            "version": device.firmware_version,
            "python": platform.python_version(),
        },
        restricted=True,
    )
