import uvicorn

from .config import settings


def run() -> None:
    uvicorn.run("taskboard.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
