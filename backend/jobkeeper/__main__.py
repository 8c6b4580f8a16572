import uvicorn

from .config import settings
from .logger import logger
from .main import create_app

if __name__ == "__main__":
    logger.info(f"Serving jobkeeper on {settings.host}:{settings.port}")
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
