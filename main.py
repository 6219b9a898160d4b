"""
Service entry point
 - Loads configuration from the environment / .env
 - Runs background monitoring until SIGINT or SIGTERM
 - SIGUSR1 / SIGUSR2 mark the application foreground / background
"""
import asyncio
import logging
import signal
import sys

from config import ConfigurationError, EnvironmentConfiguration
from core.api_client import DeviceAPIError
from pumpbackend.service import MonitorService

logger = logging.getLogger("pump_monitor")


async def run(config: EnvironmentConfiguration) -> None:
    service = MonitorService(config)
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    handlers = {
        signal.SIGINT: stop_event.set,
        signal.SIGTERM: stop_event.set,
    }
    if hasattr(signal, "SIGUSR1"):
        handlers[signal.SIGUSR1] = lambda: service.visibility.set_foreground(True)
        handlers[signal.SIGUSR2] = lambda: service.visibility.set_foreground(False)
    for sig, handler in handlers.items():
        try:
            loop.add_signal_handler(sig, handler)
        except NotImplementedError:
            pass

    await service.start()
    try:
        await stop_event.wait()
    finally:
        await service.stop()


def main() -> int:
    try:
        config = EnvironmentConfiguration.from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(level=config.log_level,
                        format='%(asctime)s %(name)s %(levelname)s: %(message)s')
    try:
        asyncio.run(run(config))
    except DeviceAPIError as e:
        logger.error("Monitor service failed: %s", e)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
