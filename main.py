"""
EOHub main entry point.
Loads cached data, starts maintenance jobs and serves until interrupted.
"""

import asyncio

from loguru import logger

from eohub.app import create_hub
from eohub.settings import global_settings


async def main() -> None:
    """Run the data hub."""
    logger.info("Starting EOHub...")
    hub = create_hub(global_settings)

    try:
        await hub.start()

        status = hub.credentials.get_auth_status()
        if not status.is_authenticated:
            url, _ = hub.credentials.build_authorization_url()
            logger.warning(
                f"Not logged in to Earthdata; AppEEARS data will use fallbacks. Login: {url}"
            )

        logger.info("EOHub is running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(60)

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Received interrupt signal, shutting down...")
    except Exception as e:
        logger.error(f"Error in main loop: {e}")
    finally:
        await hub.close()


if __name__ == "__main__":
    asyncio.run(main())
