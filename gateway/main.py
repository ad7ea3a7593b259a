import argparse
import logging
import time

from fastapi import FastAPI, Request

from gateway.api.router import api_router
from gateway.config import Settings, load_settings
from gateway.services.errors import GatewayError
from gateway.services.lifecycle import PeerLifecycle
from gateway.services.registry import PeerRegistry
from gateway.services.renderer import TemplateRenderer
from gateway.services.sweeper import Sweeper
from gateway.services.wireguard import DeviceGateway, WgctlDeviceGateway

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    device: DeviceGateway | None = None,
    registry: PeerRegistry | None = None,
    renderer: TemplateRenderer | None = None,
) -> FastAPI:
    if settings is None:
        settings = load_settings()
    if device is None:
        device = WgctlDeviceGateway.from_settings(settings)
    if registry is None:
        registry = PeerRegistry()
    if renderer is None:
        renderer = TemplateRenderer(settings.json_template_path)

    app = FastAPI(title=settings.project_name)
    app.state.settings = settings
    app.state.device = device
    app.state.registry = registry
    app.state.renderer = renderer
    app.state.lifecycle = PeerLifecycle(
        registry,
        device,
        interface=settings.interface,
        endpoint=settings.endpoint,
        use_preshared_key=settings.use_preshared_key,
    )
    app.state.sweeper = Sweeper.from_settings(settings, registry, device)
    app.include_router(api_router)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        latency_ms = (time.perf_counter() - start) * 1000
        logger.info("%s %s -> %d (%.1fms)", request.method, request.url.path, response.status_code, latency_ms)
        return response

    @app.on_event("startup")
    async def startup() -> None:  # pragma: no cover - wiring
        app.state.sweeper.start()

    @app.on_event("shutdown")
    async def shutdown() -> None:  # pragma: no cover - wiring
        await app.state.sweeper.stop()
        app.state.device.close()
        logger.info("gateway stopped")

    return app


def main(argv: list[str] | None = None) -> None:
    import uvicorn

    parser = argparse.ArgumentParser(description="WireGuard peer gateway")
    parser.add_argument("--config", default=None, help="path to a JSON configuration file")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except (OSError, ValueError) as e:
        logger.error("failed to load configuration: %s", e)
        raise SystemExit(1) from e
    logging.getLogger().setLevel(settings.log_level.upper())

    device = WgctlDeviceGateway.from_settings(settings)
    try:
        device.verify_interface()
        app = create_app(settings, device=device)
    except GatewayError as e:
        logger.error("gateway failed to start: %s", e)
        device.close()
        raise SystemExit(1) from e

    uvicorn.run(app, host=settings.listen_host, port=settings.listen_port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
