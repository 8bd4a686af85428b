import os
import asyncio
import logging
import signal
import time

from aiohttp import web

from server import cors_middleware, json_response, parse_port, serve

# ===== ENV =====
PORT = os.environ.get("PORT", "8081")
COMMAND_TIMEOUT = os.environ.get("COMMAND_TIMEOUT", "30")
DEFAULT_TIMEOUT = 30.0
WORKDIR = "/tmp"

SERVICE_NAME = "Linux Command Executor"

DANGEROUS_PATTERNS = (
    "rm -rf /",
    "mkfs",
    "dd if=",
    "format",
    "fdisk",
    "shutdown",
    "reboot",
    "halt",
    "init 0",
    "init 6",
    "kill -9 1",
    "killall -9",
    ":(){ :|:& };:",  # fork bomb
    "chmod 777 /",
    "chown root /",
)

TIMEOUT_KEY: web.AppKey[float] = web.AppKey("command_timeout", float)


def is_dangerous_command(command: str) -> bool:
    lowered = command.lower()
    return any(pattern in lowered for pattern in DANGEROUS_PATTERNS)


def parse_timeout(raw: str) -> float:
    try:
        timeout = float(raw)
    except ValueError:
        raise RuntimeError(f"COMMAND_TIMEOUT must be a number of seconds, got {raw!r}") from None
    if timeout <= 0:
        raise RuntimeError(f"COMMAND_TIMEOUT must be positive, got {raw!r}")
    return timeout


def _fmt_seconds(seconds: float) -> str:
    return str(int(seconds)) if float(seconds).is_integer() else str(seconds)


def _kill_process_group(proc: asyncio.subprocess.Process):
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


async def execute_command(command: str, timeout: float = DEFAULT_TIMEOUT, cwd: str = WORKDIR) -> dict:
    """Run ``command`` through the shell and collect its output.

    Never raises for command failures: spawn errors, non-zero exits and
    timeouts all come back as a result dict with ``output``, ``error`` and
    ``exit_code``.
    """
    try:
        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            # Own process group so a timeout can take down the shell's children too.
            start_new_session=True,
        )
    except OSError as e:
        return {"output": "", "error": str(e), "exit_code": -1}

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        _kill_process_group(proc)
        await proc.wait()
        return {
            "output": "",
            "error": f"Command timed out after {_fmt_seconds(timeout)} seconds",
            "exit_code": -1,
        }

    output = stdout.decode("utf-8", errors="replace")
    error = stderr.decode("utf-8", errors="replace")
    exit_code = proc.returncode
    if exit_code != 0 and not error:
        error = f"Command failed: {command}"
    return {"output": output, "error": error, "exit_code": exit_code}


def _failure(error: str, status: int = 200) -> web.Response:
    return json_response(
        {"success": False, "error": error, "timestamp": time.time()},
        status=status,
    )


@web.middleware
async def error_middleware(request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        print("Unhandled error:", repr(e), flush=True)
        return _failure("Internal server error", status=500)


async def health(request: web.Request) -> web.Response:
    return json_response({
        "status": "healthy",
        "service": SERVICE_NAME,
        "timestamp": time.time(),
    })


async def run_command(request: web.Request) -> web.Response:
    try:
        body = await request.json()
    except ValueError:
        return _failure("Bad JSON", status=400)

    command = body.get("command") if isinstance(body, dict) else None
    if not isinstance(command, str) or not command.strip():
        return _failure("No command provided")

    command = command.strip()
    if is_dangerous_command(command):
        return _failure("Command not allowed for security reasons")

    result = await execute_command(command, timeout=request.app[TIMEOUT_KEY])
    return json_response({
        "success": True,
        "command": command,
        "output": result["output"],
        "error": result["error"],
        "exit_code": result["exit_code"],
        "timestamp": time.time(),
    })


def create_app(timeout: float = DEFAULT_TIMEOUT) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app[TIMEOUT_KEY] = timeout
    app.router.add_get("/", health)
    app.router.add_post("/run", run_command)
    return app


async def main_async():
    port = parse_port(PORT)
    timeout = parse_timeout(COMMAND_TIMEOUT)
    await serve(create_app(timeout), port, [
        f"✅ Linux Command Server starting on port {port}",
        "✅ Ready to execute Linux commands via POST /run",
        "✅ Health check available at GET /",
    ])


def main():
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main_async())


if __name__ == "__main__":
    main()
