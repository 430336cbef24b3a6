"""
Server lifecycle management for credproxy.

The service runs under uvicorn, either in the foreground for the CLI or in
a child process that scripts and examples can start and stop.
"""

import subprocess
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional

import uvicorn
from rich.console import Console

from credproxy.config import load_config

console = Console()

APP_IMPORT_PATH = "credproxy.app:app"

# Seconds a child server gets to crash before it is considered started.
STARTUP_GRACE = 1


def find_ssl_certificates(
    directory: Optional[Path] = None,
) -> tuple[Optional[str], Optional[str]]:
    """
    Find a key and certificate among the .pem files in a directory.

    A file with "key" in its name is the key; the first other .pem file
    is the certificate. Both must be present for TLS to be enabled, so
    the result is either (keyfile, certfile) or (None, None).
    """
    pem_files = sorted((directory or Path.cwd()).glob("*.pem"))
    keys = [p for p in pem_files if "key" in p.name.lower()]
    certs = [p for p in pem_files if "key" not in p.name.lower()]

    if not keys or not certs:
        return None, None
    return str(keys[0]), str(certs[0])


def validate_config() -> dict[str, Any]:
    """
    Check that the service can start with the current configuration.

    Returns the loaded config. Raises ValueError when no encryption key is
    available from config.json or the environment.
    """
    config = load_config()
    if not config.get("encryption_key"):
        raise ValueError(
            "No encryption key configured. Run 'credproxy init' or set "
            "CREDPROXY_ENCRYPTION_KEY."
        )
    return config


def _uvicorn_command(
    host: str,
    port: int,
    reload: bool,
    ssl_keyfile: Optional[str],
    ssl_certfile: Optional[str],
) -> list[str]:
    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        APP_IMPORT_PATH,
        "--host",
        host,
        "--port",
        str(port),
    ]
    if reload:
        cmd.append("--reload")
    if ssl_keyfile and ssl_certfile:
        cmd += ["--ssl-keyfile", ssl_keyfile, "--ssl-certfile", ssl_certfile]
    return cmd


def start_server(
    host: str = "127.0.0.1",
    port: int = 8000,
    reload: bool = False,
    ssl_keyfile: Optional[str] = None,
    ssl_certfile: Optional[str] = None,
    block: bool = True,
) -> Optional[subprocess.Popen]:
    """
    Start credproxy under uvicorn.

    With block=True the server runs in this process until it stops and
    None is returned. Otherwise it runs in a child process, which is
    returned once it has survived a short startup grace period.

    Raises ValueError if no encryption key is configured, and RuntimeError
    if the child process exits during startup.
    """
    config = validate_config()

    if not block:
        process = subprocess.Popen(
            _uvicorn_command(host, port, reload, ssl_keyfile, ssl_certfile),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=str(Path.cwd()),
        )
        time.sleep(STARTUP_GRACE)

        if process.poll() is not None:
            _, stderr = process.communicate()
            raise RuntimeError(
                f"Server failed to start: {stderr.decode('utf-8')}"
            )
        return process

    scheme = "https" if ssl_keyfile and ssl_certfile else "http"
    console.print(
        f"[blue]Starting credproxy on {scheme}://{host}:{port} "
        f"({config['store']['backend']} store)[/blue]"
    )

    # Request logging is done by LoggingMiddleware.
    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = "%(message)s"
    log_config["formatters"]["access"]["fmt"] = "%(message)s"

    uvicorn.run(
        APP_IMPORT_PATH,
        host=host,
        port=port,
        reload=reload,
        ssl_keyfile=ssl_keyfile,
        ssl_certfile=ssl_certfile,
        log_config=log_config,
        access_log=False,
    )
    return None


def stop_server(process: subprocess.Popen, timeout: int = 5) -> None:
    """
    Stop a child server, escalating from SIGTERM to SIGKILL after timeout.
    """
    if process.poll() is not None:
        return

    process.terminate()
    try:
        process.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()


@contextmanager
def run_server(**options):
    """
    Run credproxy in a child process for the duration of a with block.

    Accepts the keyword options of start_server except block. The process
    is stopped on exit, including when the block raises.
    """
    process = start_server(block=False, **options)
    try:
        yield process
    finally:
        stop_server(process)
