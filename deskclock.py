import logging
import signal
import sys
from threading import Lock

from alarms import AlarmListener, AlarmManager, AlarmRecord, register_alarm_tools
from alarms.manager import format_time
from alarms.sounds import pick_alarm_sound
from config import Config, load_config, setup_logging
from device_tools import DeviceState, register_device_tools
from settings import Settings
from time_utils import SystemClock, format_tz_offset, resolve_timezone
from toolserver import McpServer, SerialExecutor, ToolRegistry

logger = logging.getLogger("deskclock")


def graceful_exit(signum, frame) -> None:  # pragma: no cover - signal handler
    logger.info("Shutting down (signal %s)", signum)
    raise KeyboardInterrupt()


class AlarmAnnouncer(AlarmListener):
    """Moves alarm side effects off the clock thread onto the device executor."""

    def __init__(self, executor: SerialExecutor):
        self.executor = executor

    def on_alarm_triggered(self, alarm: AlarmRecord) -> None:
        self.executor.schedule(lambda: self._ring(alarm))

    def on_alarm_snoozed(self, alarm: AlarmRecord) -> None:
        self.executor.schedule(
            lambda: logger.info("Alarm %s snoozed for %s minutes", alarm.id, alarm.snooze_minutes)
        )

    def on_alarm_stopped(self, alarm: AlarmRecord) -> None:
        self.executor.schedule(lambda: logger.info("Alarm %s stopped", alarm.id))

    def _ring(self, alarm: AlarmRecord) -> None:
        sound = pick_alarm_sound(alarm.sound)
        when = format_time(alarm.hour, alarm.minute)
        logger.info("Alarm %s ringing at %s with %r: %s", alarm.id, when, sound, alarm.label or "Alarm")


class StdoutSender:
    def __init__(self, stream=None):
        self.stream = stream or sys.stdout
        self._lock = Lock()

    def __call__(self, message: str) -> None:
        with self._lock:
            self.stream.write(message + "\n")
            self.stream.flush()


class DeviceRuntime:
    def __init__(self, config: Config, sender, clock=None):
        self.config = config
        self.executor = SerialExecutor()
        self.registry = ToolRegistry()
        self.device = DeviceState(config.board_name, config.firmware_version)
        self.alarm_manager = AlarmManager(
            settings=Settings.open(config.settings_dir, "alarms"),
            clock=clock or SystemClock(resolve_timezone(config.timezone_name)),
            check_interval=config.alarm_check_interval,
            default_snooze_minutes=config.alarm_default_snooze_min,
            default_max_snooze_count=config.alarm_max_snooze_count,
        )
        self.alarm_manager.add_listener(AlarmAnnouncer(self.executor))
        self.server = McpServer(
            self.registry,
            self.executor,
            sender,
            server_name=config.board_name,
            server_version=config.firmware_version,
            max_payload_size=config.tools_max_payload,
        )

        register_device_tools(self.registry, self.device)
        if config.enable_alarm_tools:
            register_alarm_tools(self.registry, self.alarm_manager)

    def start(self) -> None:
        self.executor.start()
        self.alarm_manager.start()
        logger.info("Runtime started with %s tools: %s", len(self.registry), ", ".join(self.registry.names()))

    def shutdown(self) -> None:
        self.alarm_manager.shutdown()
        self.executor.shutdown()


def main() -> None:
    config = load_config()
    setup_logging(config.log_level, config.log_dir)
    signal.signal(signal.SIGINT, graceful_exit)
    tz = resolve_timezone(config.timezone_name)
    logger.info("Starting %s %s (UTC%s)", config.board_name, config.firmware_version, format_tz_offset(tz))
    clock = SystemClock(tz)

    runtime = DeviceRuntime(config, StdoutSender(), clock=clock)
    runtime.start()
    try:
        for line in sys.stdin:
            line = line.strip()
            if line:
                runtime.server.handle_message(line)
        logger.info("Input closed")
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        runtime.shutdown()


if __name__ == "__main__":
    main()
