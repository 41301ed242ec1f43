#!/usr/bin/env python3
"""
MPRIS position service (mpris-position-service)

Follows one MPRIS player on the session bus and broadcasts its estimated
playback position to UI clients via WebSocket, once per second while
playing and immediately on play/pause/seek/rate changes.  No polling: the
position comes from a PositionEstimator.

Also exposes HTTP command endpoints so other services can steer the player
without talking D-Bus themselves:
  POST /player/play       — start or resume playback
  POST /player/pause      — pause playback
  POST /player/playpause  — toggle play/pause
  POST /player/next       — skip to next track
  POST /player/prev       — go to previous track
  POST /player/stop       — stop playback
  POST /player/seek       — {"offset": seconds}, negative seeks backwards
  GET  /player/state      — current playback state
  GET  /player/position   — last estimated position
  GET  /player/status     — player name, interfaces, metadata, client count
  GET  /ws                — push feed of position_update messages

The player is ``player.bus_name`` in config.json.
"""

import asyncio
import json
import logging
import math
import signal
from datetime import timedelta

from aiohttp import web

from .lib.bus import create_bus
from .lib.config import cfg
from .lib.errors import MprisError
from .player.descriptors import METADATA, PLAYBACK_STATUS, POSITION
from .player.handle import RemoteObjectHandle

logger = logging.getLogger("mpris-position-service")

DEFAULT_BUS_NAME = "org.mpris.MediaPlayer2.vlc"
DEFAULT_PORT = 8771


class PositionService:
    id = "mpris"
    name = "MPRIS"

    def __init__(self, handle: RemoteObjectHandle | None = None, *,
                 bus_name: str | None = None, estimator_kwargs: dict | None = None):
        self.handle = handle
        self.bus_name = bus_name or cfg("player", "bus_name", default=DEFAULT_BUS_NAME)
        self.host = cfg("service", "host", default="0.0.0.0")
        self.port = int(cfg("service", "port", default=DEFAULT_PORT))
        self.max_backoff = float(cfg("service", "resubscribe_max_backoff", default=30))
        # Passed through to subscribe_position (tick_interval, clock, sleep)
        self._estimator_kwargs = estimator_kwargs or {}

        self.running: bool = False
        self._bus = None
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._runner: web.AppRunner | None = None
        self._monitor_task: asyncio.Task | None = None
        self._estimator = None
        self._last_position: timedelta | None = None
        self._last_state: str | None = None

    # ── WebSocket broadcasting ──

    def _position_message(self) -> dict:
        return {
            "type": "position_update",
            "data": {
                "position": self._last_position.total_seconds() if self._last_position is not None else None,
                "state": self._last_state or "stopped",
            },
        }

    async def broadcast_position_update(self):
        """Push the current estimate to all connected WebSocket clients."""
        if not self._ws_clients:
            return

        message = json.dumps(self._position_message())

        disconnected = set()
        for ws in self._ws_clients:
            try:
                await ws.send_str(message)
            except Exception:
                disconnected.add(ws)

        self._ws_clients -= disconnected

    # ── HTTP + WebSocket server ──

    def build_app(self) -> web.Application:
        app = web.Application()

        # WebSocket endpoint for UI position push
        app.router.add_get("/ws", self._handle_ws)

        # Player command endpoints
        app.router.add_post("/player/play", self._command_handler("play"))
        app.router.add_post("/player/pause", self._command_handler("pause"))
        app.router.add_post("/player/playpause", self._command_handler("play_pause"))
        app.router.add_post("/player/next", self._command_handler("next"))
        app.router.add_post("/player/prev", self._command_handler("previous"))
        app.router.add_post("/player/stop", self._command_handler("stop"))
        app.router.add_post("/player/seek", self._handle_seek)
        app.router.add_get("/player/state", self._handle_state)
        app.router.add_get("/player/position", self._handle_position)
        app.router.add_get("/player/status", self._handle_status)
        return app

    async def start(self):
        """Connect to the player, start listening, start following position."""
        self.running = True

        if self.handle is None:
            self._bus = create_bus()
            self.handle = await RemoteObjectHandle.connect(self._bus, self.bus_name)

        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info("Following %s: HTTP + WebSocket on port %d", self.handle.bus_name, self.port)

        self._monitor_task = asyncio.create_task(self.monitor_position())

    async def run(self):
        """Convenience entry-point: start + wait for signal + stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await stop_event.wait()
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Clean up resources."""
        self.running = False

        if self._monitor_task:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

        if self._estimator is not None:
            await self._estimator.aclose()
            self._estimator = None

        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        if self._bus is not None:
            await self._bus.close()
            self._bus = None

    # ── Monitoring ──

    async def monitor_position(self):
        """Follow the estimator; resubscribe with backoff whenever it ends."""
        backoff = 1  # seconds

        while self.running:
            try:
                self._estimator = await self.handle.subscribe_position(**self._estimator_kwargs)
                self._last_position = self._estimator.position
                self._last_state = str(self._estimator.playback).lower()
                await self.broadcast_position_update()
                backoff = 1  # reset on successful subscribe

                async for position in self._estimator:
                    self._last_position = position
                    self._last_state = str(self._estimator.playback).lower()
                    await self.broadcast_position_update()

                logger.info("Position feed of %s ended, resubscribing in %ds",
                            self.handle.bus_name, backoff)
            except asyncio.CancelledError:
                raise
            except MprisError as e:
                logger.warning("Cannot follow %s (%s), retrying in %ds",
                               self.handle.bus_name, e, backoff)
            finally:
                if self._estimator is not None:
                    await self._estimator.aclose()
                    self._estimator = None

            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self.max_backoff)

    # ── WebSocket handler ──

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._ws_clients.add(ws)
        logger.info("WebSocket client connected (%d total)", len(self._ws_clients))

        try:
            if self._last_position is not None:
                await ws.send_json(self._position_message())

            # Push-only — client messages are ignored
            async for msg in ws:
                pass
        finally:
            self._ws_clients.discard(ws)
            logger.info("WebSocket client disconnected (%d remaining)",
                        len(self._ws_clients))

        return ws

    # ── HTTP route handlers ──

    def _cors_headers(self):
        return {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }

    def _result(self, ok: bool) -> web.Response:
        return web.json_response(
            {"status": "ok" if ok else "error"},
            headers=self._cors_headers())

    def _command_handler(self, method: str):
        async def handler(request: web.Request) -> web.Response:
            try:
                await getattr(self.handle, method)()
                logger.info("%s accepted", method)
                return self._result(True)
            except MprisError as e:
                logger.error("%s failed: %s", method, e)
                return self._result(False)
        return handler

    async def _handle_seek(self, request: web.Request) -> web.Response:
        try:
            data = await request.json()
            offset = float(data["offset"])
            if not math.isfinite(offset):
                raise ValueError(f"offset must be finite, got {offset}")
            distance = timedelta(seconds=abs(offset))
        except (ValueError, KeyError, TypeError, OverflowError) as e:
            logger.warning("Bad seek request: %s", e)
            return web.json_response(
                {"status": "error", "reason": "expected {\"offset\": seconds}"},
                status=400, headers=self._cors_headers())
        try:
            await self.handle.seek(distance, backwards=offset < 0)
            logger.info("Seek %+.1fs accepted", offset)
            return self._result(True)
        except MprisError as e:
            logger.error("Seek failed: %s", e)
            return self._result(False)

    async def _handle_state(self, request: web.Request) -> web.Response:
        try:
            state = str(await self.handle.get(PLAYBACK_STATUS)).lower()
        except MprisError as e:
            logger.warning("Could not read playback state: %s", e)
            state = self._last_state or "stopped"
        return web.json_response({"state": state}, headers=self._cors_headers())

    async def _handle_position(self, request: web.Request) -> web.Response:
        position = self._last_position
        if position is None:
            try:
                position = await self.handle.get(POSITION)
            except MprisError as e:
                logger.warning("Could not read position: %s", e)
        return web.json_response(
            {"position": position.total_seconds() if position is not None else None,
             "estimated": self._last_position is not None},
            headers=self._cors_headers())

    async def _handle_status(self, request: web.Request) -> web.Response:
        status = await self.get_status()
        return web.json_response(status, headers=self._cors_headers())

    async def get_status(self) -> dict:
        """Player status for the system panel."""
        try:
            track = (await self.handle.get(METADATA)).to_dict()
        except MprisError as e:
            logger.debug("No metadata for status: %s", e)
            track = None
        return {
            "player": self.handle.bus_name,
            "interfaces": sorted(i.name.lower() for i in self.handle.interfaces),
            "state": self._last_state or "stopped",
            "current_track": track,
            "ws_clients": len(self._ws_clients),
        }


async def main():
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    service = PositionService()
    await service.run()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
