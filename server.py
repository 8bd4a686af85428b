import os
import json
import asyncio
import logging
import signal
from collections.abc import Mapping
from dataclasses import dataclass

from aiohttp import web

# ===== ENV =====
PORT = os.environ.get("PORT", "8080")
SERVER_VARIANT = os.environ.get("SERVER_VARIANT", "container")

# ===== DEMO PAYLOADS =====
FIB_N = 40
HEAVY_COMPUTE_MESSAGE = "Heavy compute done from Container!"

# Platform variables echoed back by the "environment" variant. SEVICE is spelled
# the way the deployment config sets it.
ENVIRONMENT_KEYS = (
    "CLOUDFLARE_COUNTRY_A2",
    "CLOUDFLARE_DEPLOYMENT_ID",
    "CLOUDFLARE_LOCATION",
    "CLOUDFLARE_NODE_ID",
    "CLOUDFLARE_PLACEMENT_ID",
    "CLOUDFLARE_REGION",
    "APP_ENV",
    "SEVICE",
    "MESSAGE",
)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
}
PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@dataclass(frozen=True)
class ApiResponse:
    message: str
    value: int

    def to_dict(self) -> dict:
        return {"message": self.message, "value": self.value}


@dataclass(frozen=True)
class FixedRoute:
    path: str
    message: str
    value: int


@dataclass(frozen=True)
class Variant:
    routes: tuple[FixedRoute, ...]
    echo_environment: bool = False


VARIANTS = {
    "container": Variant(
        routes=(FixedRoute("/api/api1", "From Container!", 101),),
    ),
    "environment": Variant(
        routes=(FixedRoute("/api/api1", "From Container!!!", 101),),
        echo_environment=True,
    ),
    "multi": Variant(
        routes=(
            FixedRoute("/api/api1", "From Container API 1!", 101),
            FixedRoute("/api/api2", "From Container API 2!", 102),
            FixedRoute("/api/api3", "From Container API 3!", 103),
        ),
    ),
}

ENVIRON_KEY: web.AppKey[Mapping] = web.AppKey("environ", Mapping)


def json_response(data, status: int = 200) -> web.Response:
    # Plain "application/json", no charset suffix.
    return web.Response(
        body=json.dumps(data).encode("utf-8"),
        status=status,
        content_type="application/json",
    )


def _is_preflight(request: web.Request) -> bool:
    if request.method != "OPTIONS":
        return False
    # Unknown paths fall through so the router answers 404.
    error = request.match_info.http_exception
    return error is None or isinstance(error, web.HTTPMethodNotAllowed)


@web.middleware
async def cors_middleware(request, handler):
    if _is_preflight(request):
        resp = web.Response(status=204)
        resp.headers.update(PREFLIGHT_HEADERS)
    else:
        resp = await handler(request)

    resp.headers.update(CORS_HEADERS)
    return resp


def fib(n: int) -> int:
    # Exponential on purpose: this endpoint exists to burn CPU.
    if n <= 1:
        return n
    return fib(n - 1) + fib(n - 2)


def canonical_header_name(name: str) -> str:
    """Normalize a header name the way Go's net/http does (``x-test`` -> ``X-Test``)."""
    return "-".join(part.capitalize() for part in name.split("-"))


def first_header_values(headers) -> dict[str, str]:
    """Map each header name to its first value; repeated header lines are dropped.

    ``Host`` is left out, as Go's net/http keeps it off the header map.
    """
    result: dict[str, str] = {}
    for name, value in headers.items():
        name = canonical_header_name(name)
        if name == "Host":
            continue
        result.setdefault(name, value)
    return result


def environment_snapshot(environ: Mapping) -> dict[str, str]:
    return {key: environ.get(key, "") for key in ENVIRONMENT_KEYS}


def api_handler(message: str, value: int):
    payload = ApiResponse(message=message, value=value)

    async def handler(request: web.Request) -> web.Response:
        return json_response(payload.to_dict())

    return handler


async def heavy_compute(request: web.Request) -> web.Response:
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, fib, FIB_N)
    return json_response({"message": HEAVY_COMPUTE_MESSAGE, "fib": result, "n": FIB_N})


async def response_headers(request: web.Request) -> web.Response:
    return json_response({"headers": first_header_values(request.headers)})


async def response_headers_with_environment(request: web.Request) -> web.Response:
    return json_response({
        "headers": first_header_values(request.headers),
        "environment_variables": environment_snapshot(request.app[ENVIRON_KEY]),
    })


def create_app(variant: str = "container", environ: Mapping | None = None) -> web.Application:
    if variant not in VARIANTS:
        raise RuntimeError(f"Unknown SERVER_VARIANT {variant!r}, expected one of {sorted(VARIANTS)}")
    selected = VARIANTS[variant]

    app = web.Application(middlewares=[cors_middleware])
    app[ENVIRON_KEY] = os.environ if environ is None else environ

    for route in selected.routes:
        app.router.add_get(route.path, api_handler(route.message, route.value))
    app.router.add_get("/api/heavycompute", heavy_compute)
    if selected.echo_environment:
        app.router.add_get("/api/responseheaders", response_headers_with_environment)
    else:
        app.router.add_get("/api/responseheaders", response_headers)
    return app


def parse_port(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"PORT must be an integer, got {raw!r}") from None


async def serve(app: web.Application, port: int, banner: list[str]):
    """Run ``app`` on 0.0.0.0:port until SIGTERM or SIGINT."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", port)
    await site.start()

    for line in banner:
        print(line, flush=True)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _on_signal, sig, stop)

    try:
        await stop.wait()
    finally:
        await runner.cleanup()
        print("Server stopped", flush=True)


def _on_signal(sig: signal.Signals, stop: asyncio.Event):
    print(f"Received {sig.name}, shutting down gracefully", flush=True)
    stop.set()


async def main_async():
    port = parse_port(PORT)
    app = create_app(SERVER_VARIANT)
    paths = sorted(
        resource.canonical for resource in app.router.resources()
    )
    await serve(app, port, [
        f"✅ Demo API ({SERVER_VARIANT}) listening on :{port}",
        f"✅ Routes: {', '.join(paths)}",
    ])


def main():
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
