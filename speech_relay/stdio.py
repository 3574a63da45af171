"""stdio transport: newline-delimited JSON-RPC on stdin/stdout.

For assistant clients that launch the server as a local subprocess. stdout
carries protocol frames only; logs go to stderr.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import IO

from speech_relay.config import settings
from speech_relay.errors import PARSE_ERROR
from speech_relay.rpc.protocol import error_response, handle_message
from speech_relay.storage.artifacts import ArtifactStore
from speech_relay.tools.dispatcher import ToolDispatcher
from speech_relay.tts.client import SpeechClient

log = logging.getLogger(__name__)


async def serve(
    dispatcher: ToolDispatcher,
    reader: IO[str],
    writer: IO[str],
) -> int:
    """Answer requests from *reader* until EOF. Returns the number handled."""
    handled = 0
    while True:
        line = await asyncio.to_thread(reader.readline)
        if not line:
            break
        line = line.strip()
        if not line:
            continue
        try:
            raw = json.loads(line)
        except ValueError:
            log.warning("Ignoring non-JSON line on stdin")
            response = error_response(None, PARSE_ERROR, "Parse error")
        else:
            response = await handle_message(dispatcher, raw)
        handled += 1
        if response is not None:
            writer.write(json.dumps(response, ensure_ascii=False) + "\n")
            writer.flush()
    return handled


async def _run() -> None:
    store = ArtifactStore(settings.audio_dir)
    store.ensure_ready()
    client = SpeechClient()
    await client.start()
    try:
        await serve(ToolDispatcher(client, store), sys.stdin, sys.stdout)
    finally:
        await client.close()


def main() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
        stream=sys.stderr,
    )
    log.info("Speech relay listening on stdio (audio_dir=%s)", settings.audio_dir)
    asyncio.run(_run())


if __name__ == "__main__":
    main()
