"""Start a gateway in-process and rename the session through it.

Demonstrates the lifecycle a host process goes through:

1. Start the gateway for an existing session client.
2. Hand ``handle.url`` to the agent (here we play the agent with
   ``fastmcp.Client``).
3. Stop the gateway when the session ends.
"""

from __future__ import annotations

import asyncio

from fastmcp import Client

from happy_mcp.http import start_gateway
from happy_mcp.session import ConsoleSessionClient


async def main() -> None:
    session = ConsoleSessionClient("example-session")
    handle = await start_gateway(session)
    print(f"==> Gateway listening at {handle.url} with tools {list(handle.tool_names)}")
    try:
        async with Client(f"{handle.url}/") as client:
            result = await client.call_tool("change_title", {"title": "Refactor plan"})
            print(f"==> Tool replied: {result.content[0].text}")
    finally:
        handle.stop()
        await handle.wait_stopped()

    print(f"==> Session received {len(session.messages)} summary message(s)")


if __name__ == "__main__":
    asyncio.run(main())
