import asyncio
import logging

import uvicorn

from homecinema.core.config import settings
from homecinema.main import create_app

logger = logging.getLogger(__name__)


def build_servers(app) -> list[uvicorn.Server]:
    """
    One plain HTTP server, plus an HTTPS one when a key and certificate are present.
    Both serve the same application object and so share its state.
    """
    servers = [uvicorn.Server(uvicorn.Config(app, host=settings.HOST, port=settings.HTTP_PORT))]

    keyfile, certfile = settings.SSL_KEYFILE, settings.SSL_CERTFILE
    if keyfile and certfile and keyfile.is_file() and certfile.is_file():
        servers.append(uvicorn.Server(uvicorn.Config(
            app,
            host=settings.HOST,
            port=settings.HTTPS_PORT,
            ssl_keyfile=str(keyfile),
            ssl_certfile=str(certfile),
            # Startup already runs on the HTTP server
            lifespan="off",
        )))
    else:
        logger.warning("SSL certificates not found, HTTPS server not started")
    return servers


async def serve() -> None:
    servers = build_servers(create_app(settings))
    await asyncio.gather(*(server.serve() for server in servers))


def main() -> None:
    asyncio.run(serve())


if __name__ == "__main__":
    main()
