import asyncio
import logging
import sys

from aiohttp import web

from config.settings import Settings, get_settings
from db.database_setup import init_db_connection
from evswap.app.factories.build_services import build_core_services
from evswap.services.momo_service import momo_callback_route
from evswap.utils.graceful_shutdown import GracefulShutdownManager
from evswap.utils.periodic_task import PeriodicTask

MOMO_CALLBACK_PATH = "/api/payment/momo-return"


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - [%(module)s.%(funcName)s:%(lineno)d] - %(message)s",
        stream=sys.stdout,
    )
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def build_web_app(services: dict, async_session_factory) -> web.Application:
    app = web.Application()
    app["async_session_factory"] = async_session_factory
    app["momo_service"] = services["momo_service"]
    app["subscription_service"] = services["subscription_service"]
    app.router.add_get(MOMO_CALLBACK_PATH, momo_callback_route)
    app.router.add_post(MOMO_CALLBACK_PATH, momo_callback_route)
    return app


async def run(settings: Settings):
    engine, async_session_factory = init_db_connection(settings)
    services = build_core_services(settings, async_session_factory)

    shutdown_manager = GracefulShutdownManager(timeout=settings.SHUTDOWN_TIMEOUT_SECONDS)
    shutdown_manager.install_signal_handlers(asyncio.get_running_loop())

    sweep_task = None
    if settings.RESERVATION_SWEEP_ENABLED:
        sweep_task = PeriodicTask(
            "reservation-expiry",
            services["reservation_expiry_service"].run_once,
            settings.RESERVATION_SWEEP_INTERVAL_SECONDS,
        )
        sweep_task.start()
        logging.info(
            f"Reservation sweep scheduled every {settings.RESERVATION_SWEEP_INTERVAL_SECONDS}s"
        )
    else:
        logging.warning("Reservation sweep disabled by configuration")

    app = build_web_app(services, async_session_factory)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, settings.WEB_SERVER_HOST, settings.WEB_SERVER_PORT)
    await site.start()
    logging.info(f"Web server started on {settings.WEB_SERVER_HOST}:{settings.WEB_SERVER_PORT}")

    async def stop_sweep():
        if sweep_task:
            await sweep_task.stop(timeout=settings.SHUTDOWN_TIMEOUT_SECONDS)

    async def stop_web_server():
        await runner.cleanup()

    async def close_momo():
        await services["momo_service"].close()

    async def dispose_engine():
        await engine.dispose()
        logging.info("Database engine disposed")

    shutdown_manager.register_shutdown_handler(stop_web_server)
    shutdown_manager.register_shutdown_handler(stop_sweep)
    shutdown_manager.register_shutdown_handler(close_momo)
    shutdown_manager.register_shutdown_handler(dispose_engine)

    await shutdown_manager.wait_for_shutdown()


def main():
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logging.info("Interrupted")


if __name__ == "__main__":
    main()
