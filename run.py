import uvicorn
import logging
from aibot import create_app
from aibot.core.config import configure_logging, settings

configure_logging(settings.LOG_LEVEL)

app = create_app(settings)

if __name__ == "__main__":
    # Start the FastAPI server
    logging.info("FastAPI server starting...")
    uvicorn.run(app, host="0.0.0.0", port=8000)
