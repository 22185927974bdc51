"""Async stdlib client for the record query server."""

from __future__ import annotations

import argparse
import asyncio
import shlex
import sys

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 16166
READ_CHUNK_SIZE = 65536


async def send_command(
    host: str,
    port: int,
    command: str,
    *,
    timeout: float = 2.0,
) -> str | None:
    """Send one command on a fresh connection and return the reply text.

    Returns None when the server closes the connection without answering,
    which is what a full server does to new clients.
    """
    reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    try:
        return await exchange(reader, writer, command, timeout=timeout)
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass


async def exchange(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    command: str,
    *,
    timeout: float,
) -> str | None:
    writer.write(command.rstrip("\n").encode("utf-8") + b"\n")
    await writer.drain()
    reply = await _read_reply(reader, timeout=timeout)
    if reply is None:
        return None
    return reply.decode("utf-8", errors="replace").rstrip("\n")


async def _read_reply(
    reader: asyncio.StreamReader,
    *,
    timeout: float,
    idle_secs: float = 0.1,
) -> bytes | None:
    # Replies are not length-prefixed: take the first chunk, then keep reading
    # until the server goes quiet.
    try:
        first = await asyncio.wait_for(reader.read(READ_CHUNK_SIZE), timeout=timeout)
    except ConnectionResetError:
        return None
    if not first:
        return None

    buffer = bytearray(first)
    while True:
        try:
            chunk = await asyncio.wait_for(reader.read(READ_CHUNK_SIZE), timeout=idle_secs)
        except (asyncio.TimeoutError, ConnectionResetError):
            break
        if not chunk:
            break
        buffer.extend(chunk)
    return bytes(buffer)


async def run_interactive(host: str, port: int, *, timeout: float) -> int:
    reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    loop = asyncio.get_running_loop()
    try:
        while True:
            try:
                line = await loop.run_in_executor(None, input, "client> ")
            except EOFError:
                return 0
            if not line.strip():
                continue
            reply = await exchange(reader, writer, line, timeout=timeout)
            if reply is None:
                print("Server closed the connection.", file=sys.stderr)
                return 1
            print(reply)
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send commands to the record query server")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--timeout", type=float, default=2.0)
    parser.add_argument(
        "command",
        nargs="*",
        help="command to send once, e.g. query department=rd; omit for interactive mode",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        if not args.command:
            return asyncio.run(run_interactive(args.host, args.port, timeout=args.timeout))

        reply = asyncio.run(
            send_command(args.host, args.port, shlex.join(args.command), timeout=args.timeout)
        )
    except (OSError, asyncio.TimeoutError) as exc:
        print(f"Connection failed: {exc}", file=sys.stderr)
        return 1

    if reply is None:
        print("Server closed the connection.", file=sys.stderr)
        return 1
    print(reply)
    return 0


if __name__ == "__main__":
    sys.exit(main())
