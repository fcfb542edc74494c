"""ASGI entrypoint: `uvicorn main:app`."""

import uvicorn

from app import create_app
from core import settings

app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host=settings.host, port=settings.port)
