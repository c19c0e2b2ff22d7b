"""FastAPI admin API for Courier.

Exposes webhook registration, delivery history, retries, test sends and
statistics over REST. Authentication is left to the deployment (gateway,
reverse proxy).

Example:
    ```python
    import uvicorn
    from courier.api import create_app

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
    ```

Or run directly:
    ```bash
    uvicorn courier.api:app --reload
    ```
"""

from .app import app, create_app
from .router import router

__all__ = [
    "app",
    "create_app",
    "router",
]
