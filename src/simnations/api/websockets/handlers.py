"""WebSocket handler streaming economic job snapshots and live events."""

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from simnations.scheduler.status import StatusReporter


def register(app: FastAPI) -> None:
    @app.websocket("/ws/economic-job")
    async def economic_job_events(websocket: WebSocket) -> None:
        await websocket.accept()

        controller = getattr(websocket.app.state, "economic_job", None)
        if controller is None:
            await websocket.send_json({"type": "error", "detail": "Economic job not initialized"})
            await websocket.close(code=1011)
            return

        queue = controller.subscribe()
        try:
            snapshot = {"type": "snapshot", "status": StatusReporter(controller).snapshot()}
            await websocket.send_json(jsonable_encoder(snapshot))

            while True:
                event = await queue.get()
                await websocket.send_json(jsonable_encoder(event))
        except WebSocketDisconnect:
            pass
        finally:
            controller.unsubscribe(queue)
