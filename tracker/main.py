"""ASGI entry point for the shipment tracking service."""

from tracker.factory import create_app

# Configuration is read from TRACKER_* environment variables
app = create_app()


if __name__ == "__main__":
    import uvicorn
    from tracker.config import get_config

    uvicorn.run(app, **get_config().get_uvicorn_config())
