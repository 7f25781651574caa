"""AniSync Main Application."""

import asyncio
import signal
import sys

from pydantic import ValidationError

from anisync import ANISYNC_HEADER, log
from anisync.config.settings import get_config
from anisync.core.engine import SyncEngine
from anisync.core.sched import SchedulerClient


def _setup_signal_handlers_for_scheduler(scheduler: SchedulerClient) -> None:
    """Install SIGINT/SIGTERM handlers that request scheduler shutdown."""
    loop = asyncio.get_running_loop()

    def _on_signal(sig):
        name = signal.Signals(sig).name if sig else "UNKNOWN"
        log.info(f"AniSync: Received {name} signal, initiating graceful shutdown...")
        scheduler.request_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: _on_signal(s))
        except NotImplementedError:
            signal.signal(sig, lambda s, f: _on_signal(s))


def validate_configuration() -> bool:
    """Validate the application configuration and display user information.

    Returns:
        bool: True if at least one user can be synchronized
    """
    config = get_config()
    if not config.users:
        log.error("AniSync: No users configured")
        return False

    usable = 0
    for user_id, user in config.users.items():
        sources = []
        if user.has_list_token:
            expired = " (token expired)" if user.is_token_expired() else ""
            sources.append(f"MyAnimeList{expired}")
        if user.has_library:
            sources.append(f"Jellyfin at {user.jellyfin_url}")
        if sources:
            usable += 1
        log.info(
            f"AniSync: User $$'{user_id}'$$: "
            f"{', '.join(sources) or 'no sources configured'}"
        )

    if usable == 0:
        log.error("AniSync: No user has a MyAnimeList token or Jellyfin server")
        return False
    return True


async def run() -> int:
    """Main application entry point.

    Initializes and runs the application scheduler until shutdown.

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    app_scheduler: SchedulerClient | None = None

    ret = 0
    try:
        log.info("\n" + ANISYNC_HEADER)
        log.info(f"AniSync: {get_config()}")

        if not validate_configuration():
            return 1

        app_scheduler = SchedulerClient(SyncEngine(get_config()))
        await app_scheduler.initialize()
        await app_scheduler.start()

        _setup_signal_handlers_for_scheduler(app_scheduler)
        await app_scheduler.wait_for_completion()
    except KeyboardInterrupt:
        log.info("AniSync: Keyboard interrupt received, shutting down...")
    except ValidationError as e:
        log.error(f"AniSync: Configuration validation error: {e}")
        return 1
    except (OSError, PermissionError) as e:
        log.error(f"AniSync: File system error: {e}")
        return 1
    except asyncio.CancelledError:
        log.info("AniSync: Application cancelled")
        return 0
    except Exception as e:
        log.error(f"AniSync: Unexpected application error: {e}", exc_info=True)
        return 1
    finally:
        if app_scheduler:
            log.info("AniSync: Shutting down application...")
            try:
                await app_scheduler.stop()
                log.success("AniSync: Application shutdown complete")
            except Exception as e:
                log.error(f"AniSync: Error during shutdown: {e}", exc_info=True)
                ret = 1
    return ret


def main() -> int:
    """Run the application event loop.

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    try:
        return asyncio.run(run())
    except KeyboardInterrupt:
        log.info("AniSync: Application interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
