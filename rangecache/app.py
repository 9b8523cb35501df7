from __future__ import annotations

from typing import Annotated, Any

from litestar import Litestar, Response, delete, get, post
from litestar.exceptions import NotFoundException, ValidationException
from litestar.params import Parameter
from litestar.plugins.prometheus import PrometheusConfig, PrometheusController
from litestar.status_codes import (
    HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
    HTTP_502_BAD_GATEWAY,
)

from .errors import EndOfData, ObjectNotFound, StreamError
from .service import HandleNotFound, StreamService

prometheus_config = PrometheusConfig(app_name="rangecache", prefix="rangecache")


def create_app(service: StreamService | None = None) -> Litestar:
    """Create the ASGI application serving reads through open handles."""
    if service is None:
        service = StreamService.from_env()

    @get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @post("/objects/{object_id:str}/handles")
    async def open_handle(
        object_id: Annotated[str, Parameter(description="Remote object id")],
    ) -> dict[str, Any]:
        try:
            handle_id, obj = await service.open(object_id)
        except ObjectNotFound as error:
            raise NotFoundException(detail=str(error)) from error
        return {"handle": handle_id, "object_id": obj.object_id, "size": obj.size}

    @get("/handles/{handle_id:str}")
    async def read_handle(
        handle_id: Annotated[str, Parameter(description="Open handle id")],
        offset: Annotated[int, Parameter(ge=0)],
        size: Annotated[int, Parameter(ge=0)],
    ) -> Response[bytes]:
        if size > service.max_read_size:
            msg = f"size {size} exceeds the limit of {service.max_read_size} bytes"
            raise ValidationException(detail=msg)
        try:
            data = await service.read(handle_id, offset, size)
        except HandleNotFound as error:
            raise NotFoundException(detail=str(error)) from error
        except EndOfData:
            return Response(
                content=b"",
                status_code=HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
                media_type="application/octet-stream",
            )
        except StreamError as error:
            return Response(
                content=str(error).encode(),
                status_code=HTTP_502_BAD_GATEWAY,
                media_type="text/plain",
            )
        return Response(content=data, media_type="application/octet-stream")

    @delete("/handles/{handle_id:str}")
    async def close_handle(
        handle_id: Annotated[str, Parameter(description="Open handle id")],
    ) -> None:
        try:
            await service.close(handle_id)
        except HandleNotFound as error:
            raise NotFoundException(detail=str(error)) from error

    async def startup(app: Litestar) -> None:
        await service.startup()

    async def shutdown(app: Litestar) -> None:
        await service.shutdown()

    return Litestar(
        route_handlers=[
            health,
            open_handle,
            read_handle,
            close_handle,
            PrometheusController,
        ],
        on_startup=[startup],
        on_shutdown=[shutdown],
        middleware=[prometheus_config.middleware],
    )


app = create_app()
