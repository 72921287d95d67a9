import uvicorn
from upload_service.core.config import settings

if __name__ == "__main__":
    uvicorn.run("upload_service.main:app", host="0.0.0.0", port=settings.SERVICE_PORT)
