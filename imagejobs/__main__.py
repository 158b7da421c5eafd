import uvicorn

from imagejobs.config import settings

if __name__ == "__main__":
    uvicorn.run("imagejobs.main:app", host="0.0.0.0", port=settings.port)
