"""FastAPI main application for the Codenames backend"""

import logging

from .ws.server import app

logger = logging.getLogger(__name__)


@app.get("/")
async def root():
    return {"message": "Codenames Game API", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
