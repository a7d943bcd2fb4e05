from aiohttp import web
from .core.logger import get_logger

logger = get_logger("HealthServer")

HEALTH_TEXT = "Monitoring service is running.\n"

async def handle_health(request: web.Request) -> web.Response:
    return web.Response(status=200, text=HEALTH_TEXT, content_type="text/plain")

def create_health_app() -> web.Application:
    """
    Liveness probe: any method on any path answers 200.
    """
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", handle_health)
    return app

async def start_health_server(port: int, host: str = "0.0.0.0") -> web.AppRunner:
    runner = web.AppRunner(create_health_app(), access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("health_server_listening", port=port)
    return runner
