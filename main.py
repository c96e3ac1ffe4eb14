import uvicorn

from richlink_api.app import app
from richlink_api.configurations.config import settings

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
