"""
Web server - aiohttp application for the operator interface.
"""

import asyncio
import logging

from aiohttp import web

from sorting_station.config import OVERLAY_STREAM_FPS, UPLOAD_JPEG_QUALITY, WEB_HOST, WEB_PORT
from sorting_station.errors import StationError
from sorting_station.sensors import StopReason

logger = logging.getLogger(__name__)


class WebServer:
    """
    Operator web interface server.

    Provides:
    - Station status, event log and bins (JSON)
    - Monitoring / stream / detection controls
    - Manual controller commands
    - Parameter tuning
    - Live frame with overlay (MJPEG)
    """

    def __init__(self, station):
        """
        Args:
            station: Station instance to expose
        """
        self.station = station
        self.app = web.Application()
        self._setup_routes()

    def _setup_routes(self):
        """Configure routes."""
        # Read-only views
        self.app.router.add_get("/api/status", self.api_status)
        self.app.router.add_get("/api/log", self.api_log)
        self.app.router.add_get("/api/bins", self.api_bins)

        # Session controls
        self.app.router.add_post("/api/monitoring/start", self.api_monitoring_start)
        self.app.router.add_post("/api/monitoring/stop", self.api_monitoring_stop)
        self.app.router.add_post("/api/stream/start", self.api_stream_start)
        self.app.router.add_post("/api/stream/stop", self.api_stream_stop)
        self.app.router.add_post("/api/detection", self.api_detection)
        self.app.router.add_post("/api/detections/clear", self.api_detections_clear)

        # Controller commands
        self.app.router.add_post("/api/control", self.api_control)

        # Inference connectivity check
        self.app.router.add_post("/api/inference/test", self.api_inference_test)

        # Runtime parameters (addresses, mode, thresholds, timings)
        self.app.router.add_get("/api/params", self.api_params_get)
        self.app.router.add_post("/api/params", self.api_params_set)

        # Streams
        self.app.router.add_get("/stream/overlay", self.stream_overlay)

    async def api_status(self, request):
        """Get current station status."""
        return web.json_response(self.station.status())

    async def api_log(self, request):
        """Operator event log, newest first."""
        return web.json_response({"entries": self.station.log.to_list()})

    async def api_bins(self, request):
        """Latest bin snapshot."""
        data = self.station.bins.snapshot.to_dict()
        data["alerts"] = self.station.bins.alerts
        return web.json_response(data)

    async def api_monitoring_start(self, request):
        changed = self.station.start_monitoring()
        return web.json_response({"monitoring": self.station.is_monitoring, "changed": changed})

    async def api_monitoring_stop(self, request):
        changed = self.station.stop_monitoring()
        return web.json_response({"monitoring": self.station.is_monitoring, "changed": changed})

    async def api_stream_start(self, request):
        station = self.station
        if station.is_cooldown:
            return web.json_response({"error": "Cannot start stream during cooldown"}, status=409)
        if not station.params.camera_address:
            return web.json_response({"error": "No camera IP configured"}, status=400)

        started = station.start_stream("manual start")
        return web.json_response({
            "started": started,
            "streaming": station.is_streaming,
            "state": station.state.name,
        })

    async def api_stream_stop(self, request):
        stopped = self.station.stop_stream(StopReason.MANUAL)
        return web.json_response({"stopped": stopped, "state": self.station.state.name})

    async def api_detection(self, request):
        """Enable or disable the detection loop. Body: {"enabled": bool}."""
        data = await _read_json(request)
        if not isinstance(data.get("enabled"), bool):
            raise web.HTTPBadRequest(text='Expected {"enabled": true|false}')
        self.station.set_detection_enabled(data["enabled"])
        return web.json_response({"enabled": self.station.detection.enabled})

    async def api_detections_clear(self, request):
        self.station.clear_detections()
        return web.json_response({"cleared": True})

    async def api_control(self, request):
        """Send a manual controller command. Body: {"command": str}."""
        data = await _read_json(request)
        command = data.get("command")
        if not isinstance(command, str):
            raise web.HTTPBadRequest(text='Expected {"command": "<name>"}')

        try:
            result = await self.station.send_manual_command(command)
        except ValueError as e:
            return web.json_response({"error": str(e)}, status=400)
        except StationError as e:
            return web.json_response({"error": str(e), "command": command}, status=502)

        return web.json_response({"command": command, "result": result})

    async def api_inference_test(self, request):
        ok = await self.station.inference.test_connection()
        return web.json_response({"ok": ok, "configured": self.station.inference.is_configured()})

    async def api_params_get(self, request):
        """Get current tunable parameters."""
        return web.json_response(self.station.params.to_dict(redact=True))

    async def api_params_set(self, request):
        """Update tunable parameters. Include _save=true to persist to disk."""
        data = await _read_json(request)
        save = data.pop("_save", False)
        params = self.station.params
        params.update(**data)
        self.station.overlay.display_time = params.display_time

        if save:
            params.save()

        return web.json_response(params.to_dict(redact=True))

    async def stream_overlay(self, request):
        """MJPEG stream of the live frame with detection boxes blended in."""
        response = web.StreamResponse()
        response.content_type = "multipart/x-mixed-replace; boundary=frame"
        await response.prepare(request)

        stream = self.station.stream
        overlay = self.station.overlay
        try:
            while True:
                if stream.is_loaded:
                    jpeg = overlay.compose_jpeg(stream.frame, UPLOAD_JPEG_QUALITY)
                    if jpeg:
                        await response.write(
                            b"--frame\r\n"
                            b"Content-Type: image/jpeg\r\n\r\n"
                            + jpeg
                            + b"\r\n"
                        )
                await asyncio.sleep(1.0 / OVERLAY_STREAM_FPS)
        except (ConnectionResetError, ConnectionAbortedError):
            pass
        except Exception as e:
            logger.error(f"Overlay stream error: {e}")

        return response


async def _read_json(request) -> dict:
    try:
        data = await request.json()
    except ValueError:
        raise web.HTTPBadRequest(text="Invalid JSON body")
    if not isinstance(data, dict):
        raise web.HTTPBadRequest(text="Expected a JSON object")
    return data


def create_app(station) -> web.Application:
    """Create the web application."""
    server = WebServer(station)
    return server.app


async def run_server(station, host=WEB_HOST, port=WEB_PORT):
    """Run the web server."""
    app = create_app(station)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"Web server running at http://{host}:{port}")
    return runner
